from django.apps import AppConfig


class BookkeepingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "bookkeeping"

    # ensure receivers are registered
    def ready(self):
        import bookkeeping.signals  # noqa: F401
