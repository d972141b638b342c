import logging
from collections.abc import Iterator
from typing import Any, Callable

from sqlalchemy import LargeBinary, String, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from content_plane.base import ObjectStore, RefStore, RefValue, verify_object
from content_plane.errors import ConcurrentHeadUpdate, ObjectNotFound
from content_plane.hashing import hash_object
from content_plane.objects import ObjectKind

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ObjectModel(Base):
    __tablename__ = "objects"
    oid: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)


class RefModel(Base):
    __tablename__ = "refs"
    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    symbolic: Mapped[bool] = mapped_column(default=False)
    value: Mapped[str] = mapped_column(String(255), nullable=False)


class SqlObjectStore(ObjectStore):
    def __init__(self, session_maker: Callable[[], Session]) -> None:
        self.session_maker = session_maker

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("SqlObjectStore(...)")
        else:
            with p.group(4, "SqlObjectStore(", ")"):
                p.breakable()
                p.text(f"session_maker={self.session_maker},")
                p.breakable()

    def put(self, kind: ObjectKind, payload: bytes) -> str:
        oid = hash_object(kind.value, payload)
        with self.session_maker() as session:
            if session.get(ObjectModel, oid) is not None:
                return oid
            session.add(ObjectModel(oid=oid, kind=kind.value, payload=payload))
            try:
                session.commit()
            except IntegrityError:
                # stored concurrently by another writer
                session.rollback()
                return oid

        logger.debug("Stored %s %s (%d bytes)", kind.value, oid, len(payload))
        return oid

    def get(self, oid: str) -> tuple[ObjectKind, bytes]:
        with self.session_maker() as session:
            item = session.get(ObjectModel, oid)
            if item is None:
                raise ObjectNotFound(oid)
            kind, payload = item.kind, item.payload
        return verify_object(oid, kind, payload), payload

    def exists(self, oid: str) -> bool:
        stmt = select(ObjectModel.oid).where(ObjectModel.oid == oid)
        with self.session_maker() as session:
            return session.execute(stmt).first() is not None

    def iter_ids(self) -> Iterator[str]:
        stmt = select(ObjectModel.oid).order_by(ObjectModel.oid)
        with self.session_maker() as session:
            return iter(list(session.execute(stmt).scalars().all()))


class SqlRefStore(RefStore):
    def __init__(self, session_maker: Callable[[], Session]) -> None:
        self.session_maker = session_maker

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("SqlRefStore(...)")
        else:
            with p.group(4, "SqlRefStore(", ")"):
                p.breakable()
                p.text(f"session_maker={self.session_maker},")
                p.breakable()

    def _get(self, session: Session, name: str) -> RefValue | None:
        item = session.get(RefModel, name)
        if item is None:
            return None
        return RefValue(symbolic=item.symbolic, value=item.value)

    def get(self, name: str) -> RefValue | None:
        with self.session_maker() as session:
            return self._get(session, name)

    def compare_and_set(
        self, name: str, expected: RefValue | None, new: RefValue
    ) -> None:
        with self.session_maker() as session:
            if expected is None:
                try:
                    session.execute(
                        insert(RefModel).values(
                            name=name, symbolic=new.symbolic, value=new.value
                        )
                    )
                    session.commit()
                    return
                except IntegrityError:
                    session.rollback()
                    current = self._get(session, name)
                    raise ConcurrentHeadUpdate(
                        name, None, current.value if current else None
                    ) from None

            result = session.execute(
                update(RefModel)
                .where(
                    RefModel.name == name,
                    RefModel.symbolic == expected.symbolic,
                    RefModel.value == expected.value,
                )
                .values(symbolic=new.symbolic, value=new.value)
            )
            if result.rowcount != 1:
                session.rollback()
                current = self._get(session, name)
                raise ConcurrentHeadUpdate(
                    name, expected.value, current.value if current else None
                )
            session.commit()

    def iter_names(self, prefix: str = "") -> Iterator[str]:
        stmt = (
            select(RefModel.name)
            .where(RefModel.name.startswith(prefix, autoescape=True))
            .order_by(RefModel.name)
        )
        with self.session_maker() as session:
            return iter(list(session.execute(stmt).scalars().all()))
