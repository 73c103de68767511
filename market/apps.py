from django.apps import AppConfig


class MarketConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'market'
    verbose_name = 'Farm Direct Market'

    def ready(self):
        # Connect notification receivers to the order and message events
        from . import signals  # noqa: F401
