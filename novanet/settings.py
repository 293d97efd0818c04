"""
Django settings for the Novanet station provisioning platform
"""

from pathlib import Path
from decouple import config, Csv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config(
    "SECRET_KEY", default="django-insecure-novanet-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config("DEBUG", default=False, cast=bool)

ALLOWED_HOSTS = config(
    "ALLOWED_HOSTS",
    default="localhost,127.0.0.1,testserver",
    cast=Csv(),
)

# Application definition
INSTALLED_APPS = [
    "jazzmin",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework.authtoken",
    "corsheaders",
    "django_crontab",  # For the reconciliation pass
    "stations",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "novanet.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "novanet.wsgi.application"

# Database
# MySQL in production (DB_ENGINE=django.db.backends.mysql), SQLite for local runs
DB_ENGINE = config("DB_ENGINE", default="django.db.backends.sqlite3")

if DB_ENGINE == "django.db.backends.sqlite3":
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": config("DB_NAME", default=str(BASE_DIR / "db.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": config("DB_NAME", default="novanet"),
            "USER": config("DB_USER", default="root"),
            "PASSWORD": config("DB_PASSWORD", default=""),
            "HOST": config("DB_HOST", default="localhost"),
            "PORT": config("DB_PORT", default="3306"),
            "OPTIONS": {
                "charset": "utf8mb4",
                "init_command": "SET sql_mode='STRICT_TRANS_TABLES'",
            },
        }
    }


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = config("TIME_ZONE", default="Africa/Nairobi")
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# nginx serves static files in production; WhiteNoise handles compression
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": (
            "django.contrib.staticfiles.storage.StaticFilesStorage"
            if DEBUG
            else "whitenoise.storage.CompressedStaticFilesStorage"
        )
    },
}

WHITENOISE_USE_FINDERS = DEBUG
WHITENOISE_AUTOREFRESH = DEBUG

# Security Settings - Environment Aware Configuration
SECURE_SSL_REDIRECT = config("SECURE_SSL_REDIRECT", default=not DEBUG, cast=bool)
if not DEBUG:
    SECURE_CONTENT_TYPE_NOSNIFF = True
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    X_FRAME_OPTIONS = "DENY"
    SECURE_REFERRER_POLICY = "same-origin"
else:
    SESSION_COOKIE_SECURE = False
    CSRF_COOKIE_SECURE = False
    X_FRAME_OPTIONS = "SAMEORIGIN"

# Logging
LOG_DIR = Path(config("LOG_DIR", default=str(BASE_DIR / "logs")))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "novanet.log",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO" if DEBUG else "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"] if not DEBUG else ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "stations": {
            "handlers": ["console", "file"] if not DEBUG else ["console"],
            "level": config("STATIONS_LOG_LEVEL", default="INFO"),
            "propagate": False,
        },
    },
}

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# REST Framework Configuration
REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.TokenAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
    "EXCEPTION_HANDLER": "stations.exception_handler.custom_exception_handler",
}

# CORS settings - Environment Aware
if DEBUG:
    CORS_ALLOW_ALL_ORIGINS = True
    CORS_ALLOWED_ORIGINS = []
else:
    CORS_ALLOW_ALL_ORIGINS = False
    CORS_ALLOWED_ORIGINS = config(
        "CORS_ALLOWED_ORIGINS",
        default="http://localhost:3000",
        cast=Csv(),
    )

CORS_PREFLIGHT_MAX_AGE = 86400  # 24 hours
CORS_ALLOW_CREDENTIALS = True

# Router password encryption (Fernet key is derived from this secret)
ROUTER_ENCRYPTION_KEY = config("ROUTER_ENCRYPTION_KEY", default=SECRET_KEY)

# MikroTik API defaults
MIKROTIK_PORT = config("MIKROTIK_PORT", default=8728, cast=int)
MIKROTIK_USE_SSL = config("MIKROTIK_USE_SSL", default=False, cast=bool)
# Control SSL certificate verification for self-signed certs (default: disabled)
MIKROTIK_SSL_VERIFY = config("MIKROTIK_SSL_VERIFY", default=False, cast=bool)
MIKROTIK_CONNECT_TIMEOUT = config("MIKROTIK_CONNECT_TIMEOUT", default=10, cast=int)
MIKROTIK_CONNECT_RETRIES = config("MIKROTIK_CONNECT_RETRIES", default=2, cast=int)

# WireGuard mesh (one peer per station on the server side)
WIREGUARD_INTERFACE = config("WIREGUARD_INTERFACE", default="wg0")
WIREGUARD_CONF_PATH = config(
    "WIREGUARD_CONF_PATH", default=f"/etc/wireguard/{WIREGUARD_INTERFACE}.conf"
)
WIREGUARD_LOCK_PATH = config(
    "WIREGUARD_LOCK_PATH", default=f"/tmp/novanet-{WIREGUARD_INTERFACE}.lock"
)
WIREGUARD_ENDPOINT_PORT = config("WIREGUARD_ENDPOINT_PORT", default=13231, cast=int)
WIREGUARD_KEEPALIVE = config("WIREGUARD_KEEPALIVE", default=10, cast=int)
WIREGUARD_USE_SUDO = config("WIREGUARD_USE_SUDO", default=True, cast=bool)
WIREGUARD_COMMAND_TIMEOUT = config("WIREGUARD_COMMAND_TIMEOUT", default=30, cast=int)

# FreeRADIUS
RADIUS_SERVER_IP = config("RADIUS_SERVER_IP", default=config("SERVER_IP", default=""))
RADIUS_CLIENTS_CONF_PATH = config("RADIUS_CLIENTS_CONF_PATH", default="")
RADIUS_SERVICE_NAME = config("RADIUS_SERVICE_NAME", default="freeradius")
RADIUS_USE_SUDO = config("RADIUS_USE_SUDO", default=True, cast=bool)
RADIUS_COMMAND_TIMEOUT = config("RADIUS_COMMAND_TIMEOUT", default=30, cast=int)
RADIUS_LOCK_PATH = config("RADIUS_LOCK_PATH", default="/tmp/novanet-radius-clients.lock")

# DNS lookups for station public addresses
DNS_RESOLVE_TIMEOUT = config("DNS_RESOLVE_TIMEOUT", default=5, cast=int)

# Jazzmin Configuration
JAZZMIN_SETTINGS = {
    "site_title": "Novanet Admin",
    "site_header": "Novanet",
    "site_brand": "Novanet",
    "welcome_sign": "Novanet station operations",
    "copyright": "Novanet ISP Platform",
    "search_model": [
        "auth.User",
        "stations.Platform",
        "stations.Station",
        "stations.Package",
    ],
    "topmenu_links": [
        {"name": "Home", "url": "admin:index", "permissions": ["auth.view_user"]},
        {"app": "stations"},
    ],
    "show_sidebar": True,
    "navigation_expanded": True,
    "order_with_respect_to": ["auth", "stations"],
    "icons": {
        "auth": "fas fa-users-cog",
        "auth.user": "fas fa-user",
        "stations.Platform": "fas fa-building",
        "stations.PlatformAdmin": "fas fa-user-tie",
        "stations.Station": "fas fa-network-wired",
        "stations.Package": "fas fa-boxes",
        "stations.Subscriber": "fas fa-wifi",
        "stations.PPPoEPlan": "fas fa-layer-group",
        "stations.PPPoEEntry": "fas fa-plug",
    },
    "default_icon_parents": "fas fa-chevron-circle-right",
    "default_icon_children": "fas fa-circle",
    "related_modal_active": False,
    "changeform_format": "horizontal_tabs",
}

# CRONTAB CONFIGURATION FOR SCHEDULED TASKS
# ============================================
# Run 'python manage.py crontab add' to install cron jobs
# Run 'python manage.py crontab show' to list active cron jobs
CRONJOBS = [
    # Re-drive basis migration for stations whose router disagrees with the database
    (
        "*/15 * * * *",
        "stations.tasks.reconcile_system_basis",
        ">> /var/log/novanet_cron.log 2>&1",
    ),
    # Move FreeRADIUS clients to the current DDNS address of RADIUS stations
    (
        "*/10 * * * *",
        "stations.tasks.sync_radius_client_ips",
        ">> /var/log/novanet_cron.log 2>&1",
    ),
]
