"""
Reply templates rendered with Jinja2.

Undefined variables render as empty strings instead of raising, so a template
never fails because one piece of context is missing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from jinja2 import ChainableUndefined, Environment, Template

GENERAL_TEMPLATE_ID = "general_inquiry"
GENERAL_FALLBACK_SCORE = 0.3

_BLANK_LINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class ResponseTemplate:
    id: str
    category: str
    priorities: FrozenSet[str]
    source: str
    confidence: float

    def matches(self, category: str, priority: str) -> bool:
        return self.category == category and priority in self.priorities

    def score(self, category: str, priority: str) -> float:
        score = 0.0
        if self.category == category:
            score += 0.5
        if priority in self.priorities:
            score += 0.3
        return score


class TemplateLibrary:
    def __init__(self, templates: Iterable[ResponseTemplate] = ()):
        self.env = Environment(
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
            undefined=ChainableUndefined,
        )
        self.templates: Dict[str, ResponseTemplate] = {}
        self._compiled: Dict[str, Template] = {}
        for template in templates or DEFAULT_TEMPLATES:
            self.add(template)

    def add(self, template: ResponseTemplate) -> None:
        self.templates[template.id] = template
        self._compiled[template.id] = self.env.from_string(template.source)

    def exact_match(self, category: str, priority: str) -> Optional[ResponseTemplate]:
        for template in self.templates.values():
            if template.matches(category, priority):
                return template
        return None

    def best_match(self, category: str, priority: str) -> Tuple[ResponseTemplate, float]:
        """Highest category/priority score; the general template when nothing fits."""
        best: Optional[ResponseTemplate] = None
        best_score = 0.0
        for template in self.templates.values():
            score = template.score(category, priority)
            if score > best_score:
                best, best_score = template, score
        if best is None:
            return self.templates[GENERAL_TEMPLATE_ID], GENERAL_FALLBACK_SCORE
        return best, best_score

    def render(self, template: ResponseTemplate, variables: dict) -> str:
        rendered = self._compiled[template.id].render(**variables)
        return _BLANK_LINES.sub("\n\n", rendered).strip()


PASSWORD_RESET = """Hello {{ customer_name }},

Thank you for contacting us about your password reset request.

To reset your password, please follow these steps:
1. Go to our login page
2. Click on "Forgot Password"
3. Enter your email address
4. Check your email for reset instructions
5. Follow the link in the email to create a new password

{% if knowledge_articles %}
For more detailed instructions, please refer to:
{% for article in knowledge_articles %}
- {{ article.title }}: {{ article.url }}
{% endfor %}
{% endif %}

If you continue to experience issues, please don't hesitate to reach out to us.

Best regards,
{{ agent_name }}
Support Team"""

ACCOUNT_UNLOCK = """Hello {{ customer_name }},

I understand you're having trouble accessing your account. I'm here to help you resolve this issue.

{% if account_locked %}
Your account appears to be temporarily locked for security reasons. This typically happens after multiple unsuccessful login attempts.

To unlock your account:
1. Wait 15 minutes for the automatic unlock
2. Or use the "Unlock Account" option on our login page
3. If neither works, I can manually unlock it for you
{% else %}
Let me help you troubleshoot the login issue:
{% for step in troubleshooting_steps %}
{{ loop.index }}. {{ step }}
{% endfor %}
{% endif %}

{% if knowledge_articles %}
Additional resources:
{% for article in knowledge_articles %}
- {{ article.title }}: {{ article.url }}
{% endfor %}
{% endif %}

Please let me know if you need any further assistance.

Best regards,
{{ agent_name }}
Support Team"""

TECHNICAL_ISSUE = """Hello {{ customer_name }},

Thank you for reporting this technical issue. I understand how frustrating this can be, and I'm here to help resolve it quickly.

Based on your description, here are some initial troubleshooting steps:

{% for step in troubleshooting_steps %}
{{ loop.index }}. {{ step }}
{% else %}
1. Clear your browser cache and cookies
2. Try using a different browser or incognito mode
3. Check your internet connection
{% endfor %}

{% if knowledge_articles %}
I've also found these helpful resources:
{% for article in knowledge_articles %}
- {{ article.title }}: {{ article.url }}
{% endfor %}
{% endif %}

If these steps don't resolve the issue, I'll escalate this to our technical team for further investigation. Please provide any error messages or screenshots if available.

Best regards,
{{ agent_name }}
Support Team"""

BILLING_ISSUE = """Hello {{ customer_name }},

Thank you for contacting us about your billing question. I'm sorry for any inconvenience this has caused.

While we review your account, please check the following:
{% for step in troubleshooting_steps %}
{{ loop.index }}. {{ step }}
{% endfor %}

{% if knowledge_articles %}
These articles explain the most common billing situations:
{% for article in knowledge_articles %}
- {{ article.title }}: {{ article.url }}
{% endfor %}
{% endif %}

A member of our billing team will follow up with the details of any charge or refund.

Best regards,
{{ agent_name }}
Support Team"""

GENERAL_INQUIRY = """Hello {{ customer_name }},

Thank you for reaching out to us. I'm happy to help with your inquiry.

{% if knowledge_articles %}
Based on your question, I found these relevant resources that should help:

{% for article in knowledge_articles %}
- {{ article.title }}: {{ article.url }}
  {{ article.summary }}

{% endfor %}
{% else %}
I'd be happy to provide more specific assistance. Could you please provide additional details about what you're looking for?
{% endif %}

If you need any clarification or have additional questions, please don't hesitate to ask.

Best regards,
{{ agent_name }}
Support Team"""

DEFAULT_TEMPLATES: Tuple[ResponseTemplate, ...] = (
    ResponseTemplate(
        id="password_reset",
        category="account",
        priorities=frozenset({"low", "medium"}),
        source=PASSWORD_RESET,
        confidence=0.9,
    ),
    ResponseTemplate(
        id="account_unlock",
        category="account",
        priorities=frozenset({"low", "medium", "high"}),
        source=ACCOUNT_UNLOCK,
        confidence=0.85,
    ),
    ResponseTemplate(
        id="technical_issue",
        category="technical",
        priorities=frozenset({"medium", "high", "urgent"}),
        source=TECHNICAL_ISSUE,
        confidence=0.75,
    ),
    ResponseTemplate(
        id="billing_issue",
        category="billing",
        priorities=frozenset({"low", "medium", "high"}),
        source=BILLING_ISSUE,
        confidence=0.8,
    ),
    ResponseTemplate(
        id=GENERAL_TEMPLATE_ID,
        category="general",
        priorities=frozenset({"low", "medium"}),
        source=GENERAL_INQUIRY,
        confidence=0.7,
    ),
)
