# numbers_game/celery.py
import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "numbers_game.settings")

app = Celery("numbers_game")

# read CELERY_* keys from Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")

# pick up tasks.py from every installed app
app.autodiscover_tasks()

# broker may come up after the worker in deployments
app.conf.broker_connection_retry_on_startup = True

app.conf.task_track_started = True
