"""
WSGI config for the Novanet project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "novanet.settings")

application = get_wsgi_application()
