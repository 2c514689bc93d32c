# sapsync/main.py
from fastapi import FastAPI
from sapsync.core.config import settings
from sapsync.core.logging_config import setup_logging
from sapsync.database import create_tables
from sapsync.api.v1.api import api_router

setup_logging()

# Создаем app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Синхронизация клиентов, материалов и цен из SAP",
    version=settings.VERSION
)

# Подключаем роутеры
app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/health")
async def health():
    return {"status": "ok", "service": "sapsync-api"}

# Инициализация БД (dev)
create_tables()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("sapsync.main:app", host="0.0.0.0", port=8000)
