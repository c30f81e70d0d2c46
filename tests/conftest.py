import os

# Settings refuse the placeholder JWT secret unless DEBUG is on.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ADMIN_EMAIL", "admin@school.local")
