from typing import Any, Dict

SAMPLE_SCENARIOS: Dict[str, Dict[str, Any]] = {
    "billing": {
        "customer_name": "Sarah Johnson",
        "email": "sarah.johnson@email.com",
        "query": "I was charged twice for my subscription this month. Can you help me get a refund for the duplicate charge?",
        "priority": "medium",
    },
    "technical": {
        "customer_name": "Mike Chen",
        "email": "mike.chen@techcompany.com",
        "query": "Our API integration stopped working after the latest update. We're getting 500 errors on all requests.",
        "priority": "high",
    },
    "urgent": {
        "customer_name": "Emma Wilson",
        "email": "emma.wilson@startup.io",
        "query": "Our production system is down and we can't access our data. This is critical for our business!",
        "priority": "urgent",
    },
}


def get_sample(name: str) -> Dict[str, Any]:
    return dict(SAMPLE_SCENARIOS[name])
