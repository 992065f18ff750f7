"""Service registry - Business logic for bookable services"""

import logging
import secrets
import string
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Service
from ...shared.validators import slugify
from ...utils.sanitization import clean_text
from .repository import ServiceRepository
from .schemas import ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)

MIN_DURATION = 15
MAX_DURATION = 240
DURATION_STEP = 15
MAX_SLUG_SUFFIX = 100


class ServiceValidationError(ValueError):
    def __init__(self, errors: list[str]):
        super().__init__(" ".join(errors))
        self.errors = errors


class ServiceNotFoundError(LookupError):
    pass


class ServiceRegistry:
    """Service layer for bookable services.

    Services are never deleted; ``toggle_active`` is the only way to retire one
    so historical bookings keep a valid reference.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = ServiceRepository()

    def get(self, service_id: int) -> Optional[Service]:
        return self.repo.get_by_id(self.db, service_id)

    def get_by_slug(self, slug: str) -> Optional[Service]:
        return self.repo.get_by_slug(self.db, slug)

    def get_all_active(self) -> list[Service]:
        return self.repo.get_all(self.db, active_only=True)

    def get_all(self) -> list[Service]:
        return self.repo.get_all(self.db)

    @staticmethod
    def validate(name: Optional[str], duration_minutes: Optional[int], description: Optional[str]) -> dict:
        """
        Sanitize and validate service fields.

        Raises:
            ServiceValidationError: with every problem found, not just the first
        """
        errors = []

        name = clean_text(name)
        if not name:
            errors.append("Service name is required.")

        duration = duration_minutes or 0
        if duration < MIN_DURATION or duration > MAX_DURATION or duration % DURATION_STEP != 0:
            errors.append(
                f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes "
                f"in {DURATION_STEP}-minute increments."
            )

        if errors:
            raise ServiceValidationError(errors)

        return {
            "name": name,
            "duration_minutes": duration,
            "description": clean_text(description, max_length=2000, multiline=True),
        }

    def _unique_slug(self, name: str, exclude_id: Optional[int] = None) -> str:
        base = slugify(name) or "service"
        slug = base
        suffix = 2
        while suffix <= MAX_SLUG_SUFFIX:
            if not self.repo.slug_taken(self.db, slug, exclude_id):
                return slug
            slug = f"{base}-{suffix}"
            suffix += 1

        # Every numbered slug is taken
        alphabet = string.ascii_lowercase + string.digits
        return f"{base}-{''.join(secrets.choice(alphabet) for _ in range(6))}"

    def create(self, data: ServiceCreate) -> Service:
        fields = self.validate(data.name, data.duration_minutes, data.description)
        fields["slug"] = self._unique_slug(fields["name"])
        service = self.repo.create(self.db, is_active=True, **fields)
        logger.info(f"✅ Service created: id={service.id} slug={service.slug}")
        return service

    def update(self, service_id: int, data: ServiceUpdate) -> Service:
        service = self.get(service_id)
        if not service:
            raise ServiceNotFoundError(service_id)

        fields = self.validate(
            data.name if data.name is not None else service.name,
            data.duration_minutes if data.duration_minutes is not None else service.duration_minutes,
            data.description if data.description is not None else service.description,
        )
        if fields["name"] != service.name:
            # Slug follows the name
            fields["slug"] = self._unique_slug(fields["name"], exclude_id=service.id)

        service = self.repo.update(self.db, service, **fields)
        logger.info(f"✅ Service updated: id={service.id}")
        return service

    def toggle_active(self, service_id: int) -> Service:
        service = self.get(service_id)
        if not service:
            raise ServiceNotFoundError(service_id)

        service.is_active = not service.is_active
        self.db.commit()
        self.db.refresh(service)
        logger.info(f"🔄 Service {service.id} {'activated' if service.is_active else 'deactivated'}")
        return service
