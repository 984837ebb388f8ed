import os

# keep the app's module-level engine off any real database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEMO_USER_EMAIL"] = "demo@example.com"
