from typing import Any, Awaitable, Callable, Dict
from loguru import logger
from langie.utils import utc_now_iso
import random

# Simulated backend abilities. Each takes the parameter bag sent by the engine
# and returns a result bag; none of them touch workflow state.

Ability = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

# policy owned by the escalation backend, the engine only reads `escalate`
ESCALATION_THRESHOLD = 90

_rng = random.Random()


class UnknownAbility(LookupError):
    pass


def seed(value: int) -> None:
    _rng.seed(value)


# --- ATLAS: abilities that depend on external systems ---

async def extract_entities(params: Dict[str, Any]) -> Dict[str, Any]:
    query = (params.get("query") or "").lower()
    entities = {
        "product": "Cloud Service",
        "account_id": "ACC-12345",
        "issue_type": "billing" if ("bill" in query or "charge" in query) else "technical",
        "urgency": "high" if params.get("priority") in ("high", "urgent") else "normal",
    }
    logger.debug("extract_entities {}", entities)
    return {"entities": entities}


async def enrich_records(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "sla_info": {"response_time": "4 hours", "escalation_threshold": 72},
        "customer_tier": "premium",
        "historical_tickets": 3,
    }


async def clarify_question(params: Dict[str, Any]) -> Dict[str, Any]:
    missing = [f for f in ("customer_name", "email") if not params.get(f)]
    return {
        "question": "Could you please provide your account number for verification?",
        "required_fields": missing or ["account_number"],
    }


async def extract_answer(params: Dict[str, Any]) -> Dict[str, Any]:
    return {"answer": "Account number: ACC-12345", "verified": True}


async def knowledge_base_search(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "results": [
            {
                "title": "Billing Issues Resolution Guide",
                "relevance": 0.95,
                "content": "For billing discrepancies, check account settings...",
            }
        ]
    }


async def escalation_decision(params: Dict[str, Any]) -> Dict[str, Any]:
    score = params.get("score", 0)
    escalate = score < ESCALATION_THRESHOLD
    if escalate:
        reason = f"Solution score = {score} < {ESCALATION_THRESHOLD} → escalated to human agent"
    else:
        reason = f"Solution score = {score} >= {ESCALATION_THRESHOLD} → auto-resolve"
    logger.info("escalation_decision score={} escalate={}", score, escalate)
    return {
        "escalate": escalate,
        "assigned_agent": "senior-agent-123" if escalate else None,
        "reason": reason,
    }


async def update_ticket(params: Dict[str, Any]) -> Dict[str, Any]:
    return {"updated": True, "ticket_id": params.get("ticket_id"), "new_status": "in_progress", "assigned_to": "ai-agent"}


async def close_ticket(params: Dict[str, Any]) -> Dict[str, Any]:
    return {"closed": True, "ticket_id": params.get("ticket_id"), "resolution_time": "2.5 hours", "satisfaction_survey_sent": True}


async def execute_api_calls(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "api_calls": [
            {"endpoint": "/billing/refund", "status": "success"},
            {"endpoint": "/account/update", "status": "success"},
        ]
    }


async def trigger_notifications(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "notifications_sent": [
            {"type": "email", "recipient": params.get("email"), "status": "sent"},
            {"type": "sms", "recipient": params.get("phone"), "status": "sent"},
        ]
    }


# --- COMMON: internal processing, no external dependencies ---

async def parse_request_text(params: Dict[str, Any]) -> Dict[str, Any]:
    query = params.get("query") or ""
    words = query.lower().split()
    keywords = [w.strip(".,!?") for w in words if w.strip(".,!?") in ("billing", "charge", "charged", "refund", "error", "down")]
    return {
        "structured_data": {
            "intent": "billing_inquiry" if any(k in keywords for k in ("billing", "charge", "charged", "refund")) else "support_request",
            "sentiment": "frustrated" if "!" in query else "neutral",
            "category": "technical_support",
            "keywords": keywords,
            "text_length": len(query),
        }
    }


async def normalize_fields(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "normalized": {
            "customer_name": (params.get("customer_name") or "").lower().strip(),
            "email": (params.get("email") or "").lower().strip(),
            "priority": params.get("priority") or "medium",
            "created_at": utc_now_iso(),
        }
    }


async def add_flags_calculations(params: Dict[str, Any]) -> Dict[str, Any]:
    priority = params.get("priority")
    return {
        "flags": {
            "high_priority": priority == "urgent",
            "premium_customer": True,
            "sla_risk": priority in ("high", "urgent"),
            "escalation_score": 75,
        }
    }


async def solution_evaluation(params: Dict[str, Any]) -> Dict[str, Any]:
    score = _rng.randint(60, 99)
    logger.info("solution_evaluation score={}", score)
    return {
        "solutions": [
            {
                "id": "sol-1",
                "description": "Automated billing adjustment",
                "confidence_score": score,
                "estimated_resolution_time": "15 minutes",
            }
        ],
        "best_solution": {"id": "sol-1", "score": score},
        "reason": f"Evaluated solution scored {score}/100 based on complexity and available data",
    }


async def response_generation(params: Dict[str, Any]) -> Dict[str, Any]:
    name = params.get("customer_name") or "Customer"
    reply = (
        f"Dear {name}, thank you for contacting us regarding your inquiry. "
        "We've reviewed your account and found the issue. "
        "We'll process a refund within 3-5 business days."
    )
    return {"response": reply, "tone": "professional", "personalized": bool(params.get("customer_name"))}


# mapping ability names to implementations, per backend
ATLAS_ABILITIES: Dict[str, Ability] = {
    "extract_entities": extract_entities,
    "enrich_records": enrich_records,
    "clarify_question": clarify_question,
    "extract_answer": extract_answer,
    "knowledge_base_search": knowledge_base_search,
    "escalation_decision": escalation_decision,
    "update_ticket": update_ticket,
    "close_ticket": close_ticket,
    "execute_api_calls": execute_api_calls,
    "trigger_notifications": trigger_notifications,
}

COMMON_ABILITIES: Dict[str, Ability] = {
    "parse_request_text": parse_request_text,
    "normalize_fields": normalize_fields,
    "add_flags_calculations": add_flags_calculations,
    "solution_evaluation": solution_evaluation,
    "response_generation": response_generation,
}


async def run_ability(backend: str, registry: Dict[str, Ability], ability: str, params: Dict[str, Any]) -> Dict[str, Any]:
    fn = registry.get(ability)
    if fn is None:
        raise UnknownAbility(f"Unknown {backend} ability: {ability}")
    return await fn(params)
