"""Resource store: the only code that reads or writes ``Resource`` rows."""

import logging
from typing import List, Optional

from sqlmodel import Session, select

from errors import ResourceNotFound
from models import Resource, ResourceStatus

log = logging.getLogger("handoff.store")


class ResourceStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, resource_id: int) -> Resource:
        resource = self.session.get(Resource, resource_id)
        if resource is None:
            raise ResourceNotFound()
        return resource

    def create(self, resource: Resource) -> Resource:
        self.session.add(resource)
        self.session.commit()
        self.session.refresh(resource)
        log.info("resource %s donated by user %s", resource.id, resource.owner_id)
        return resource

    def delete(self, resource_id: int) -> None:
        resource = self.get(resource_id)
        self.session.delete(resource)
        self.session.commit()
        log.info("resource %s deleted", resource_id)

    def set_status(self, resource_id: int, status: ResourceStatus) -> Resource:
        resource = self.get(resource_id)
        resource.status = status
        self.session.add(resource)
        self.session.commit()
        self.session.refresh(resource)
        return resource

    def list_by_owner(self, owner_id: int) -> List[Resource]:
        stmt = (
            select(Resource)
            .where(Resource.owner_id == owner_id)
            .order_by(Resource.id.desc())
        )
        return list(self.session.exec(stmt).all())

    def search(
        self,
        category: Optional[str] = None,
        status: Optional[ResourceStatus] = None,
        owner_id: Optional[int] = None,
    ) -> List[Resource]:
        """
        List resources, newest first. Removed resources are only returned
        when explicitly asked for by ``status``.
        """
        query = select(Resource)

        if category is not None:
            query = query.where(Resource.category == category)

        if status is not None:
            query = query.where(Resource.status == status)
        else:
            query = query.where(Resource.status != ResourceStatus.REMOVED)

        if owner_id is not None:
            query = query.where(Resource.owner_id == owner_id)

        return list(self.session.exec(query.order_by(Resource.id.desc())).all())
