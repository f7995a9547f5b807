"""
Aplicação Principal - LiveShop
==============================
Agenda de vivos e historias das lojas, cupos por plano e motor de sanções
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from liveshop.core.config import config

# Configuração de logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

from liveshop.core import models
from liveshop.core.database import engine
from liveshop.core.exceptions import LiveShopError
from liveshop.api.scheduler import start_scheduler, stop_scheduler
from liveshop.api.routes import notifications, purchases, reels, shops, streams, system


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gerencia o ciclo de vida da aplicação"""
    # STARTUP
    logger.info("=" * 60)
    logger.info("🚀 INICIANDO LIVESHOP")
    logger.info("=" * 60)

    logger.info("📊 Criando tabelas do banco de dados...")
    models.Base.metadata.create_all(bind=engine)

    if not config.is_test:
        start_scheduler()

    logger.info(f"🌍 Ambiente: {config.ENVIRONMENT}")
    logger.info(f"🕒 Fuso das lojas: {config.TIMEZONE}")
    logger.info(f"💰 Mercado Pago: {'Sandbox' if config.mercadopago_is_sandbox else 'Produção'}")
    logger.info("=" * 60)
    logger.info("✅ APLICAÇÃO PRONTA!")
    logger.info("=" * 60)

    yield

    # SHUTDOWN
    stop_scheduler()
    logger.info("👋 ENCERRANDO APLICAÇÃO")


app = FastAPI(
    title="LiveShop API",
    description="Agenda de vivos e historias com cupos por plano e sanções automáticas",
    version="1.0.0",
    docs_url="/docs" if not config.is_production else None,
    redoc_url="/redoc" if not config.is_production else None,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ═══════════════════════════════════════════════════════════
# ROTAS DA API
# ═══════════════════════════════════════════════════════════

app.include_router(shops.router)
app.include_router(streams.router)
app.include_router(reels.router)
app.include_router(purchases.router)
app.include_router(purchases.webhook_router)
app.include_router(notifications.router)
app.include_router(system.router)


@app.get("/")
async def root():
    return {
        "name": "LiveShop API",
        "version": "1.0.0",
        "status": "operational",
        "environment": config.ENVIRONMENT
    }


# ═══════════════════════════════════════════════════════════
# TRATAMENTO DE ERROS GLOBAL
# ═══════════════════════════════════════════════════════════

@app.exception_handler(LiveShopError)
async def liveshop_error_handler(request: Request, exc: LiveShopError):
    """Erros de regra de negócio com status e código estáveis"""
    logger.info(f"⚠️ {exc.code} em {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handler para erros de validação"""
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": str(exc),
            "details": {}
        }
    )


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    """Handler para erros internos"""
    logger.error(f"❌ Erro interno em {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "Ocorreu um erro interno. Por favor, tente novamente mais tarde.",
            "details": {}
        }
    )


def main():
    """Função principal para executar o servidor"""
    logger.info(f"🌐 Servidor iniciando em http://{config.HOST}:{config.PORT}")
    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.is_development,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
