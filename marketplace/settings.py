"""
Django settings for the marketplace project.
"""

import os
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-marketplace-dev-key')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True') == 'True'
ALLOWED_HOSTS = [
    'localhost',
    '127.0.0.1',
    'testserver',
]

CSRF_TRUSTED_ORIGINS = [
    'http://localhost:8000',
    'http://127.0.0.1:8000',
]

SITE_URL = os.getenv('SITE_URL', 'http://localhost:8000')

# ---------- NimbusPost courier API ----------
NIMBUSPOST_BASE_URL = os.getenv("NIMBUSPOST_BASE_URL", "https://api.nimbuspost.com/v1")
NIMBUSPOST_EMAIL = os.getenv("NIMBUSPOST_EMAIL")
NIMBUSPOST_PASSWORD = os.getenv("NIMBUSPOST_PASSWORD")
NIMBUSPOST_API_KEY = os.getenv("NIMBUSPOST_API_KEY", "")
NIMBUSPOST_COURIER_ID = os.getenv("NIMBUSPOST_COURIER_ID", "14")

# Returns a mock shipment when the courier API is unreachable (development only)
NIMBUSPOST_MOCK_FALLBACK = os.getenv('NIMBUSPOST_MOCK_FALLBACK', 'False') == 'True'

# Hub all seller shipments pass through before re-dispatch to the buyer
WAREHOUSE_ADDRESS = {
    "name": os.getenv("WAREHOUSE_CONTACT_NAME", "Warehouse Desk"),
    "company": os.getenv("WAREHOUSE_COMPANY", "Marketplace Warehouse"),
    "address": os.getenv("WAREHOUSE_STREET", "103 Dilpasand Grand, Behind Rafael Tower"),
    "city": os.getenv("WAREHOUSE_CITY", "Indore"),
    "state": os.getenv("WAREHOUSE_STATE", "Madhya Pradesh"),
    "pin_code": os.getenv("WAREHOUSE_PINCODE", "452001"),
    "phone": os.getenv("WAREHOUSE_PHONE", "9301847748"),
    "email": os.getenv("WAREHOUSE_EMAIL", "warehouse@example.com"),
}

# Relay monitor cadence in seconds
RELAY_MONITOR_INTERVAL = int(os.getenv("RELAY_MONITOR_INTERVAL", "900"))

# A forwarding claim older than this is treated as abandoned (courier login + booking timeouts, doubled)
RELAY_CLAIM_LEASE_SECONDS = int(os.getenv("RELAY_CLAIM_LEASE_SECONDS", "120"))

# ---------- Pricing policies ----------
# (lower bound, upper bound, percentage); bounds are inclusive, None is open.
# Tiers are matched in order, the fallback applies when none matches.
CHECKOUT_PLATFORM_FEE_TIERS = (
    (None, 2000, 30),
    (2001, 5000, 28),
    (5001, 10000, 25),
    (10001, 15000, 20),
)
CHECKOUT_PLATFORM_FEE_FALLBACK = 15

LISTING_PLATFORM_FEE_TIERS = (
    (None, 2000, 30),
    (None, 5000, 28),
    (None, 10000, 25),
    (None, 15000, 20),
)
LISTING_PLATFORM_FEE_FALLBACK = 15

GST_RATE = Decimal('0.18')
CHECKOUT_SHIPPING_CHARGE = Decimal(os.getenv('CHECKOUT_SHIPPING_CHARGE', '1'))

PROTECTION_PLAN_THRESHOLD = Decimal('15000')
PROTECTION_PLAN_PRICES = (Decimal('499'), Decimal('999'))

# Application definition
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'catalog',
    'cart',
    'orders',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'marketplace.middleware.SecurityHeadersMiddleware',
    'marketplace.middleware.CacheControlMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'marketplace.urls'
WSGI_APPLICATION = 'marketplace.wsgi.application'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# Database
if os.getenv('DB_NAME'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME'),
            'USER': os.getenv('DB_USER'),
            'PASSWORD': os.getenv('DB_PASSWORD'),
            'HOST': os.getenv('DB_HOST'),
            'PORT': os.getenv('DB_PORT'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# Payment Gateway Configuration
RAZORPAY_KEY_ID = os.getenv('RAZORPAY_KEY_ID', '')
RAZORPAY_KEY_SECRET = os.getenv('RAZORPAY_KEY_SECRET', '')
RAZORPAY_BASE_URL = "https://api.razorpay.com/v1"
RAZORPAY_CURRENCY = "INR"

# Notifications: "log", "email" or "telegram"
NOTIFICATION_BACKEND = os.getenv('NOTIFICATION_BACKEND', 'log')
TELEGRAM_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
TELEGRAM_ADMIN_CHAT_ID = os.getenv('TELEGRAM_ADMIN_CHAT_ID')

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Static files
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Email Configuration
EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = 'smtp.gmail.com'
EMAIL_PORT = 587
EMAIL_USE_TLS = True
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD')
DEFAULT_FROM_EMAIL = os.getenv('EMAIL_HOST_USER', 'noreply@example.com')

# Admin email for order notifications
ADMIN_ORDER_EMAIL = os.getenv('ADMIN_ORDER_EMAIL')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        app: {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False}
        for app in ('marketplace', 'catalog', 'cart', 'orders')
    },
}
