# companion/infrastructure/repositories_profile.py
from __future__ import annotations

import builtins
from collections.abc import Iterable
from typing import Any

from sqlalchemy.orm import Session

from ..domain.schemas import ProfileCreationInput
from .exceptions import ProfileNotFoundError, ValidationError
from .logging import log_database_operation as log_op
from .models import ProfileORM
from .repositories_base import BaseRepository


class ProfileRepo(BaseRepository[ProfileORM]):
    model = ProfileORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("profile.get")
    def get(self, id_: Any) -> ProfileORM | None:
        return super().get(id_)

    @log_op("profile.get_required")
    def get_by_id_required(self, id_: Any) -> ProfileORM:
        obj = super().get(id_)
        if obj is None:
            raise ProfileNotFoundError(id_)
        return obj

    @log_op("profile.create")
    def create(self, **fields: Any) -> ProfileORM:
        try:
            validated = ProfileCreationInput(
                name=fields.get("name", ""), notes=fields.get("notes")
            )
        except ValueError as e:
            raise ValidationError("name", str(e), fields.get("name")) from e
        fields.update(name=validated.name, notes=validated.notes)
        return super().create(**fields)

    @log_op("profile.delete")
    def delete(self, obj: ProfileORM) -> None:
        super().delete(obj)

    @log_op("profile.list_all")
    def list_all(self, order_by: Iterable[Any] | None = None) -> builtins.list[ProfileORM]:
        # Newest first unless told otherwise
        if order_by is not None:
            return super().list(order_by=order_by)
        return super().list(order_by=[self.model.created_at.desc(), self.model.id.desc()])
