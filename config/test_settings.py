"""
Settings used by the test suite: in-memory database, in-memory mail and
corrections run inline.
"""
from .settings import *  # noqa: F401,F403

DEBUG = True

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CORRECTION = {
    **CORRECTION,  # noqa: F405
    'LLM_API_KEY': '',
    'ASSISTANT_ID': '',
    'POLL_INTERVAL': 0,
    'EAGER': True,
    'TEST_INVITATION_LINK': 'https://tests.example.com/invitation?email=',
    'CHAT_WEBHOOK_URL': '',
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {'class': 'logging.NullHandler'},
    },
    'loggers': {
        'exams': {'handlers': ['null'], 'level': 'INFO', 'propagate': False},
    },
}
