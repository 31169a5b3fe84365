from config.settings import *  # noqa: F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    "DEFAULT_THROTTLE_CLASSES": [],
}

# The test client's logout() (called by APIClient.force_authenticate(user=None))
# needs a session engine; use one that does not require django.contrib.sessions.
SESSION_ENGINE = "django.contrib.sessions.backends.signed_cookies"
