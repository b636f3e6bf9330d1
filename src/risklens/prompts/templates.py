"""Static prompt sections and the default analysis templates."""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path

TEXT_DIR = Path(__file__).with_name("text")


def _read(name: str) -> str:
    return (TEXT_DIR / name).read_text(encoding="utf-8").strip()


SYSTEM_PREAMBLE = _read("system_preamble.txt")
OUTPUT_FORMAT = _read("output_format.txt")
VALIDATION_REMINDERS = _read("validation_reminders.txt")

DEFAULT_DOCUMENT_TYPE = "terms-of-service"
DEFAULT_INDUSTRY = "mobile-gaming"
DEFAULT_DEPTH = "detailed"

DOCUMENT_TYPE_CONTEXTS = {
    "terms-of-service": "Terms of Service govern the relationship between service provider and user, including rights, obligations, and limitations.",
    "privacy-policy": "Privacy Policies explain how personal data is collected, used, stored, and shared. Focus on data protection and user privacy rights.",
    "cookie-policy": "Cookie Policies detail how tracking technologies are used. Examine consent mechanisms and data collection practices.",
    "user-agreement": "User Agreements define acceptable use and behavior on the platform. Look for overly broad restrictions or unfair penalties.",
    "end-user-license": "End User License Agreements govern software usage rights. Focus on license restrictions and user obligations.",
}

DOCUMENT_TYPE_ALIASES = {
    "terms-and-conditions": "terms-of-service",
    "terms": "terms-of-service",
    "tos": "terms-of-service",
    "privacy": "privacy-policy",
    "cookies": "cookie-policy",
    "eula": "end-user-license",
    "end-user-license-agreement": "end-user-license",
}

INDUSTRY_CONTEXTS = {
    "mobile-gaming": """Mobile gaming applications often include terms related to:
- Virtual currency and in-app purchases
- Account suspension and termination policies
- User-generated content and intellectual property
- Data collection for advertising and analytics
- Age restrictions and parental controls
- Refund policies for digital purchases

Pay special attention to virtual currency value, account termination without cause, and excessive data collection.""",
    "social-media": """Social media platforms typically include terms covering:
- User content ownership and licensing
- Content moderation and removal policies
- Data collection and sharing practices
- Advertising and algorithmic targeting
- Account suspension and appeal processes

Focus on privacy implications, content ownership rights, and fairness of moderation policies.""",
    "e-commerce": """E-commerce platforms commonly address:
- Return and refund policies
- Product liability and warranties
- Payment processing and security
- Shipping and delivery obligations
- Dispute resolution mechanisms

Examine fairness of return policies, liability limitations, and consumer protection measures.""",
    "saas": """Software-as-a-Service agreements typically include:
- Service availability and uptime commitments
- Data security and backup policies
- Subscription terms and cancellation
- Feature changes and deprecation
- Data portability and export

Analyze fairness of service level commitments, data handling practices, and termination procedures.""",
}

INDUSTRY_ALIASES = {
    "gaming": "mobile-gaming",
    "social": "social-media",
    "ecommerce": "e-commerce",
    "software-as-a-service": "saas",
}

BASE_INSTRUCTIONS = """ANALYSIS INSTRUCTIONS:
1. Carefully read through the entire document
2. Identify all potentially unfair, deceptive, or harmful clauses
3. Assess the risk level of each problematic clause
4. Consider the impact on consumers and users
5. Provide specific rationale for each risk assessment
6. Suggest alternative approaches where appropriate"""

DEPTH_INSTRUCTIONS = {
    "basic": "Focus on the most obvious and high-impact risks.",
    "detailed": "Provide comprehensive analysis including context and implications.",
    "comprehensive": "Include thorough legal analysis, precedent considerations, and detailed recommendations.",
}


@dataclass(frozen=True)
class PromptTemplate:
    id: str
    name: str
    category: str
    system_prompt: str
    user_prompt: str
    constraints: tuple = ()
    enabled: bool = True
    defaults: dict = field(default_factory=dict)


DEFAULT_TEMPLATES = (
    PromptTemplate(
        id="mobile_gaming_basic",
        name="Mobile Gaming Basic Analysis",
        category="mobile_gaming",
        system_prompt=SYSTEM_PREAMBLE + """

You are reviewing a {{document_type}} for a {{industry}} application. Help users understand clauses that may affect their rights or experience.""",
        user_prompt="""Please analyze the following {{document_type}} for a mobile gaming application. Focus on identifying clauses that may be unfavorable to users, particularly regarding:

1. Payment and subscription terms
2. Data collection and privacy practices
3. Account termination policies
4. Virtual currency and in-app purchases
5. Dispute resolution mechanisms
6. Content ownership and user rights

For each identified issue explain the potential risk, rate its severity, suggest user-friendly actions and state your confidence.""",
        constraints=(
            "Analysis must be based only on provided text",
            "Acknowledge AI limitations clearly",
            "Avoid providing specific legal advice",
            "Rate confidence honestly",
        ),
        defaults={"document_type": "terms of service", "industry": "mobile gaming"},
    ),
    PromptTemplate(
        id="privacy_policy_analysis",
        name="Privacy Policy Analysis",
        category="privacy",
        system_prompt=SYSTEM_PREAMBLE + """

You are reviewing a privacy policy. Privacy laws vary by jurisdiction ({{jurisdiction}}); give general guidance, not a compliance assessment.""",
        user_prompt="""Analyze this privacy policy for data protection practices and user rights. Pay special attention to:

1. Types of personal data collected
2. Purposes for data processing
3. Data sharing with third parties
4. User control and rights (access, deletion, portability)
5. Data retention policies
6. Children's privacy protections""",
        constraints=(
            "Analysis must be based only on provided text",
            "Acknowledge areas of uncertainty",
        ),
        defaults={"jurisdiction": "unspecified"},
    ),
)
