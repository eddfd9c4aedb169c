import clinic.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Clinic',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('clinic_id', models.CharField(max_length=50, unique=True)),
                ('name', models.CharField(max_length=100)),
                ('timezone', models.CharField(default=clinic.models.default_timezone, max_length=64)),
                ('opening_time', models.TimeField(default=clinic.models.default_opening_time)),
                ('closing_time', models.TimeField(default=clinic.models.default_closing_time)),
            ],
        ),
        migrations.CreateModel(
            name='UserProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('clinic_admin', 'Clinic admin'), ('doctor', 'Doctor'), ('nurse', 'Nurse'), ('patient', 'Patient')], default='patient', max_length=20)),
                ('specialty', models.CharField(blank=True, max_length=100)),
                ('uhid', models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ('mobile', models.CharField(blank=True, max_length=20)),
                ('clinic', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='members', to='clinic.clinic')),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='profile', to=settings.AUTH_USER_MODEL)),
            ],
        ),
    ]
