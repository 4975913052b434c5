from sqlalchemy.orm import Session
from slugify import slugify
import structlog

from tirestore.core.config import settings
from tirestore.core.security import hash_password
from tirestore.models.category import Category
from tirestore.models.user import User, UserRole

logger = structlog.get_logger()

DEFAULT_CATEGORIES = [
    {"name": "Summer Tires", "description": "Tires for warm and dry conditions", "icon": "sun"},
    {"name": "Winter Tires", "description": "Tires for snow and ice", "icon": "snowflake"},
    {"name": "All Season Tires", "description": "Year-round tires", "icon": "cloud-sun"},
    {"name": "SUV & 4x4", "description": "Tires for SUVs and off-road vehicles", "icon": "truck"},
    {"name": "Second Hand", "description": "Inspected used tires", "icon": "recycle"},
]


def init_db(db: Session) -> None:
    """Seed the admin account and default tire categories."""

    admin = db.query(User).filter(User.email == settings.DEFAULT_ADMIN_EMAIL).first()
    if not admin:
        seed_password = (settings.DEFAULT_ADMIN_PASSWORD or "").strip()
        if not seed_password:
            message = (
                "Missing admin bootstrap credentials: set DEFAULT_ADMIN_PASSWORD "
                "or create an admin user manually before launch."
            )
            if settings.ENVIRONMENT == "production":
                logger.error("admin_seed_missing_password", env=settings.ENVIRONMENT)
                raise RuntimeError(message)
            logger.warning("admin_seed_missing_password", env=settings.ENVIRONMENT)
        else:
            admin = User(
                email=settings.DEFAULT_ADMIN_EMAIL,
                password_hash=hash_password(seed_password),
                name="Tire Store Admin",
                role=UserRole.ADMIN,
                is_active=True,
                email_verified=True,
            )
            db.add(admin)
            logger.info("admin_user_created", email=settings.DEFAULT_ADMIN_EMAIL)

    for position, cat_data in enumerate(DEFAULT_CATEGORIES):
        slug = slugify(cat_data["name"])
        if db.query(Category).filter(Category.slug == slug).first():
            continue
        db.add(Category(slug=slug, sort_order=position, **cat_data))
        logger.info("category_created", name=cat_data["name"])

    db.commit()
    logger.info("database_initialized")


if __name__ == "__main__":
    from tirestore.db.session import SessionLocal
    import tirestore.db.base  # noqa: F401

    db = SessionLocal()
    try:
        init_db(db)
    finally:
        db.close()
