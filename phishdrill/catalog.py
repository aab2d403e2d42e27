"""
Static drill catalog: fictitious target personas and the attack strategies
rotated through by the offense agent. Enumerated once at import time.
"""
from typing import List

from phishdrill.schemas import Persona, Strategy

TARGET_PERSONAS: List[Persona] = [
    Persona(
        id="1",
        name="John Doe",
        role="System Administrator",
        department="Information Technology",
        company="First National Bank",
        email="john.doe@firstnational.com",
        location="New York HQ",
        phone="x3201",
        access_level="High",
        background="Experienced system administrator managing core banking infrastructure, "
                   "server maintenance and security updates.",
    ),
    Persona(
        id="2",
        name="Jane Smith",
        role="Network Administrator",
        department="Information Technology",
        company="Metropolitan Credit Union",
        email="jane.smith@metrocu.org",
        location="Chicago Branch",
        phone="x3150",
        access_level="High",
        background="Network administrator for firewall configuration, VPN access and "
                   "network monitoring.",
    ),
    Persona(
        id="3",
        name="Michael Chen",
        role="Database Administrator",
        department="Information Technology",
        company="Pacific Trust Bank",
        email="michael.chen@pacifictrust.com",
        location="San Francisco HQ",
        phone="x4105",
        access_level="Critical",
        background="Senior database administrator with access to customer financial data.",
    ),
    Persona(
        id="4",
        name="Sarah Williams",
        role="Security Administrator",
        department="Information Security",
        company="SecureBank",
        email="s.williams@securebank.com",
        location="Seattle HQ",
        phone="x2501",
        access_level="Critical",
        background="Responsible for email security, threat detection and incident response.",
    ),
    Persona(
        id="5",
        name="David Rodriguez",
        role="IT Manager",
        department="Information Technology",
        company="Community First Bank",
        email="d.rodriguez@communityfirst.com",
        location="Austin Branch",
        phone="x5200",
        access_level="High",
        background="Oversees technology operations, vendor contracts and security policies.",
    ),
]

ATTACK_STRATEGIES: List[Strategy] = [
    Strategy(model_id="meta-llama/llama-3.1-8b-instruct", attack_level="basic", urgency_level="medium"),
    Strategy(model_id="mistralai/mistral-7b-instruct", attack_level="advanced", urgency_level="high"),
    Strategy(model_id="anthropic/claude-3-haiku", attack_level="expert", urgency_level="critical"),
]

# Mail domains of the drill organisations
PERSONA_DOMAINS = frozenset(p.email.split("@")[-1].lower() for p in TARGET_PERSONAS if p.email)

# Partner-looking sender domains used for generated drill mail
SENDER_DOMAINS = [
    "microsoft-partner-services.com",
    "adobe-licensing.com",
    "vmware-support.com",
    "oracle-enterprise.com",
    "cisco-partner.net",
    "redhat-support.com",
    "ibm-enterprise.com",
    "salesforce-partner.com",
    "aws-support-partner.com",
    "google-workspace-partner.com",
]

SENDER_NAMES = ["support", "notifications", "administrator", "service", "team", "operations", "systems"]

