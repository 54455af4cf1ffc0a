import os

from facility_ops.core.enums import UserType
from facility_ops.core.security import create_access_token
from facility_ops.db import models
from facility_ops.db.session import SessionLocal


def main() -> None:
    email = os.getenv("ADMIN_BOOTSTRAP_EMAIL")
    name = os.getenv("ADMIN_BOOTSTRAP_NAME", "Administrador")
    if not email:
        raise SystemExit("ADMIN_BOOTSTRAP_EMAIL nao definido.")
    email = email.strip().lower()

    db = SessionLocal()
    try:
        user = db.query(models.User).filter(models.User.email == email).first()
        if not user:
            user = models.User(email=email, name=name, user_type=UserType.INTERNAL.value)
            db.add(user)
        else:
            user.user_type = UserType.INTERNAL.value
            user.is_active = True
        db.commit()
        db.refresh(user)
        print(f"Admin ACTIVE: {user.email}")
        print(f"Token: {create_access_token({'sub': user.id})}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
