"""WSGI config for the Passify project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "passify.settings")

application = get_wsgi_application()
