"""Service repository - Database operations for bookable services"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Service


class ServiceRepository:
    """Repository for service database operations"""

    @staticmethod
    def get_by_id(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_by_slug(db: Session, slug: str) -> Optional[Service]:
        return db.query(Service).filter(Service.slug == slug).first()

    @staticmethod
    def get_all(db: Session, active_only: bool = False) -> list[Service]:
        """All services ordered by name, optionally only active ones"""
        query = db.query(Service)
        if active_only:
            query = query.filter(Service.is_active.is_(True))
        return query.order_by(Service.name.asc()).all()

    @staticmethod
    def slug_taken(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(Service.id).filter(Service.slug == slug)
        if exclude_id is not None:
            query = query.filter(Service.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def create(db: Session, **service_data) -> Service:
        service = Service(**service_data)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    @staticmethod
    def update(db: Session, service: Service, **updates) -> Service:
        """Update a service with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(service, key):
                setattr(service, key, value)

        db.commit()
        db.refresh(service)
        return service
