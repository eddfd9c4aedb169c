import django.db.models.deletion
import teleconsultation.models
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('clinic', '0001_initial'),
        ('scheduling', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Teleconsultation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('room_name', models.CharField(max_length=64, unique=True)),
                ('meeting_id', models.CharField(max_length=11, unique=True)),
                ('domain', models.CharField(max_length=120)),
                ('require_password', models.BooleanField(default=False)),
                ('moderator_secret', models.CharField(max_length=16)),
                ('participant_secret', models.CharField(max_length=16)),
                ('features', models.JSONField(default=teleconsultation.models.default_features)),
                ('scheduled_date', models.DateField()),
                ('scheduled_time', models.TimeField()),
                ('duration', models.PositiveSmallIntegerField(default=30)),
                ('status', models.CharField(choices=[('Scheduled', 'Scheduled'), ('Started', 'Started'), ('In Progress', 'In Progress'), ('Completed', 'Completed'), ('Cancelled', 'Cancelled'), ('Processing', 'Processing')], default='Scheduled', max_length=20)),
                ('actual_start_time', models.DateTimeField(blank=True, null=True)),
                ('actual_end_time', models.DateTimeField(blank=True, null=True)),
                ('actual_duration', models.PositiveIntegerField(blank=True, null=True)),
                ('consultation_notes', models.TextField(blank=True, max_length=2000)),
                ('diagnosis', models.TextField(blank=True, max_length=1000)),
                ('prescription', models.TextField(blank=True, max_length=1500)),
                ('follow_up_required', models.BooleanField(default=False)),
                ('follow_up_date', models.DateField(blank=True, null=True)),
                ('cancellation_reason', models.CharField(blank=True, max_length=300)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('appointment', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='teleconsultation', to='scheduling.appointment')),
                ('clinic', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='teleconsultations', to='clinic.clinic')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_teleconsultations', to=settings.AUTH_USER_MODEL)),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='doctor_teleconsultations', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='patient_teleconsultations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['scheduled_date', 'scheduled_time'],
            },
        ),
        migrations.CreateModel(
            name='TeleconsultationParticipant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('doctor', 'Doctor'), ('patient', 'Patient')], max_length=10)),
                ('joined_at', models.DateTimeField()),
                ('left_at', models.DateTimeField(blank=True, null=True)),
                ('connection_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('teleconsultation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='participants', to='teleconsultation.teleconsultation')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='teleconsultation_attendance', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['joined_at'],
                'constraints': [models.UniqueConstraint(condition=models.Q(('left_at__isnull', True)), fields=('teleconsultation', 'role'), name='one_attached_participant_per_role')],
            },
        ),
    ]
