import os

from siteledger import create_app
from siteledger.extensions import db
from siteledger.models import User

EMAIL = os.environ.get("ADMIN_EMAIL", "admin@siteledger.local")
NAME = os.environ.get("ADMIN_NAME", "Head Office Admin")

app = create_app()

with app.app_context():
    existing = User.query.filter(db.func.lower(User.email) == EMAIL.lower()).first()
    if existing:
        print("🔁 Promoting existing user to admin:", existing.email)
        existing.role = "admin"
    else:
        print("🔐 Creating new admin user...")
        db.session.add(User(name=NAME, email=EMAIL.lower(), role="admin"))

    db.session.commit()
    print("✅ Admin ready:", EMAIL)
