# storefront/api/routers/webhooks.py
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.errors import InvalidSignature, NotFound, StorefrontError, ValidationError
from storefront.domain.schemas import WebhookResultOut
from storefront.services.gateways import build_gateways
from storefront.services.reconciliation import ReconciliationEngine
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_gateways():
    return build_gateways()


def get_engine(db: Session = Depends(get_db), gateways=Depends(get_gateways)):
    return ReconciliationEngine(db, gateways)


@router.post("/{gateway}", response_model=WebhookResultOut)
async def receive_webhook(
    gateway: str,
    request: Request,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """
    200 = zastosowane, duplikat albo anomalia (bramka ma przestac ponawiac)
    401/403 = zly podpis, 404 = nieznane zamowienie, 500 = konflikt / blad (bramka ponowi)
    """
    # podpis liczony z surowych bajtow, nie z ponownie zserializowanego jsona
    raw_body = await request.body()

    gw = engine.gateways.get(gateway)
    if gw is None:
        raise http_error(NotFound(f"Nieznana bramka {gateway}"))
    signature = request.headers.get(gw.signature_header)

    try:
        result = await run_in_threadpool(engine.handle_webhook, gateway, raw_body, signature)
    except InvalidSignature as e:
        raise http_error(e, gw.signature_failure_status)
    except (NotFound, ValidationError) as e:
        raise http_error(e)
    except StorefrontError as e:
        # konflikt wersji po ponowieniach - 500, zeby bramka doreczyla jeszcze raz
        raise http_error(e, 500)
    except Exception as e:
        logger.exception(f"Webhook {gateway} failed: {e}")
        raise HTTPException(status_code=500, detail={"code": "internal_error", "message": "Internal error"})

    return result.to_dict()
