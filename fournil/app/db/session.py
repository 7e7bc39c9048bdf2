from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fournil.app.core.config import settings
from fournil.app.core.errors import FulfillmentError, StorageError
from fournil.app.db.immutability import register_immutability_listeners

logger = logging.getLogger(__name__)

engine = create_engine(settings.database_url, pool_pre_ping=True, echo=settings.debug)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

register_immutability_listeners()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Frontière transactionnelle d'une opération métier.

    - commit uniquement si tout le bloc a réussi
    - rollback sur n'importe quelle erreur (rien de partiel n'est persisté)
    - une erreur SQLAlchemy inattendue devient StorageError (réessayable)
    """
    try:
        yield db
        db.commit()
    except FulfillmentError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("storage failure, transaction rolled back")
        raise StorageError(f"Storage failure: {e.__class__.__name__}") from e
    except Exception:
        db.rollback()
        raise
