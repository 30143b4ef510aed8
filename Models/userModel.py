from mongoengine import (
    Document, EmailField, StringField, BooleanField, DateTimeField
)
from datetime import datetime, timezone


ROLES = ("user", "admin")


# =====================================
#  USER MODEL
# =====================================
class User(Document):
    """Customer/admin account. Accounts are owned by the auth service; this
    service reads them for authorization and gateway customer details."""

    first_name = StringField(required=True, max_length=50)
    last_name = StringField(required=True, max_length=50)
    email = EmailField(required=True, unique=True)
    phone = StringField(max_length=20)
    role = StringField(choices=ROLES, default="user")
    is_active = BooleanField(default=True)
    created_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    meta = {
        'collection': 'users',
        'indexes': ['role']
    }

    def clean(self):
        """Normalize email and phone before saving."""
        if self.email:
            self.email = self.email.strip().lower()
        if self.phone:
            self.phone = "".join(ch for ch in str(self.phone) if ch.isdigit() or ch == "+")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_json(self) -> dict:
        return {
            'id': str(self.id),
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'is_active': self.is_active,
        }
