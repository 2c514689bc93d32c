# sapsync/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv
from sapsync.core.config import settings

# Загрузка .env
load_dotenv()

# Создание движка SQLAlchemy
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,      # Проверка соединения
    pool_recycle=300,        # Пересоздание каждые 5 мин
    echo=False               # Логи SQL (True для debug)
)

# Фабрика сессий
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False
)

# Базовый класс для моделей
Base = declarative_base()

def get_db():
    """FastAPI dependency для получения сессии БД"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Создание таблиц при старте (dev)
def create_tables():
    # Импорт регистрирует модели в metadata
    import sapsync.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
