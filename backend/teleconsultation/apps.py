from django.apps import AppConfig


class TeleconsultationConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "teleconsultation"
