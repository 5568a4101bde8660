from sqlmodel import Session, SQLModel, create_engine

from core.config import settings

# SQLite는 요청 스레드와 이벤트 루프 스레드가 달라질 수 있으므로 check_same_thread 해제
_connect_args = (
    {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
)

engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args)


def create_db_and_tables():
    SQLModel.metadata.create_all(engine)


def get_session():
    """요청 단위 세션. FastAPI Depends로 주입한다."""
    with Session(engine) as session:
        yield session
