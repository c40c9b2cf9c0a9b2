from sqlmodel import SQLModel, create_engine
import logging

from innovation_hub.config import DATABASE_URL

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def init_db():
    from innovation_hub import models  # ensure models are imported
    SQLModel.metadata.create_all(engine)
    logger.info("Database schema ready at %s", engine.url)


def drop_db():
    SQLModel.metadata.drop_all(engine)
