import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from phishdrill.catalog import ATTACK_STRATEGIES, TARGET_PERSONAS
from phishdrill.config import settings
from phishdrill.core.ledger import StrategyLedger
from phishdrill.core.risk_classifier import RiskClassifier, verdict_status
from phishdrill.schemas import ClassificationResponse, DeployRequest, EmailRecord, EmailStatus
from phishdrill.services.inbox_store import InboxStoreError, JsonInboxStore
from phishdrill.services.ledger_store import create_ledger_store
from phishdrill.services.metrics import compute_defense_metrics, compute_inbox_metrics

logger = logging.getLogger(__name__)

router = APIRouter()

_classifier = RiskClassifier()


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_inbox() -> JsonInboxStore:
    return JsonInboxStore(settings.INBOX_FILE)


def get_ledger() -> StrategyLedger:
    """Fresh view of the persisted ledger; the offense agent is the only writer"""
    return StrategyLedger(ATTACK_STRATEGIES, TARGET_PERSONAS, create_ledger_store(), settings.learning_params())


def get_classifier() -> RiskClassifier:
    return _classifier


def _load_inbox(inbox: JsonInboxStore):
    try:
        return inbox.load()
    except InboxStoreError as e:
        logger.error(f"❌ Inbox read failed: {e}")
        raise HTTPException(status_code=500, detail=f"Inbox unavailable: {str(e)}")


# ============================================================================
# LEDGER ENDPOINTS
# ============================================================================

@router.get("/ledger/summary")
def ledger_summary(top_n: int = Query(5, ge=1, le=50), ledger: StrategyLedger = Depends(get_ledger)):
    """Top strategies by score and top personas by vulnerability"""
    return ledger.summary(top_n).to_wire()


@router.get("/ledger")
def ledger_state(ledger: StrategyLedger = Depends(get_ledger)):
    return ledger.state.to_wire()


# ============================================================================
# CLASSIFICATION
# ============================================================================

@router.post("/classify")
def classify_email(email: EmailRecord, classifier: RiskClassifier = Depends(get_classifier)):
    """Score one email with the decision list without touching the inbox"""
    features, classification = classifier.classify_email(email)
    response = ClassificationResponse(
        classification=classification,
        status=verdict_status(classification.risk_level),
        features=features.to_dict(),
    )
    return response.to_wire()


# ============================================================================
# INBOX / METRICS
# ============================================================================

@router.get("/agent/metrics")
def agent_metrics(inbox: JsonInboxStore = Depends(get_inbox)):
    """Offense view over the whole inbox (click rate is clicked / bypassed)"""
    return compute_inbox_metrics(_load_inbox(inbox)).to_wire()


@router.get("/defense/metrics")
def defense_metrics(inbox: JsonInboxStore = Depends(get_inbox)):
    return compute_defense_metrics(_load_inbox(inbox)).to_wire()


@router.post("/agent/deploy-emails")
def deploy_emails(request: DeployRequest, inbox: JsonInboxStore = Depends(get_inbox)):
    """Append generated emails to the shared inbox"""
    try:
        size = inbox.append(request.emails)
    except InboxStoreError as e:
        logger.error(f"❌ Error in /agent/deploy-emails: {e}")
        raise HTTPException(status_code=500, detail=f"Deploy failed: {str(e)}")

    logger.info(f"✓ Deployed {len(request.emails)} emails via API")
    return {"success": True, "deployed": len(request.emails), "inboxSize": size}


@router.get("/inbox")
def list_inbox(
    status: Optional[EmailStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
    inbox: JsonInboxStore = Depends(get_inbox),
):
    """Most recent emails first"""
    records = _load_inbox(inbox)
    if status:
        records = [r for r in records if r.status == status]
    return [r.to_wire() for r in reversed(records[-limit:])]
