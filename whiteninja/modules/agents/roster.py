"""
Agent roster - the five build agents, their aliases and system prompts

Prompts are configuration data: each one states the agent's job and the
block protocol it must answer in. The orchestrator never inspects them.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


OUTPUT_PROTOCOL = """OUTPUT FORMAT (use these exact markers, each on its own line):

===THINKING===
your reasoning
===END_THINKING===

===MESSAGE: @teammate===
a short note to a teammate (kuba, maja, leo, nova, rex)
===END_MESSAGE===

===FILE_CREATE: path/to/file.ext===
complete file content
===END_FILE===

===FILE_MODIFY: path/to/file.ext===
complete updated file content
===END_FILE===

===FILE_DELETE: path/to/file.ext===
(one line, no body: removes a file that is no longer needed)

===REVIEW_COMMENT: path/to/file.ext:line===
what is wrong and how to fix it
===END_REVIEW===

===BUG_REPORT: severity=high|medium|low===
Issue: exact description
File: path
Fix: suggested fix
===END_BUG===

Always output COMPLETE file contents, never partial snippets."""


@dataclass
class AgentProfile:
    id: str
    name: str
    role: str
    description: str
    aliases: List[str] = field(default_factory=list)
    instructions: str = ""

    @property
    def system_prompt(self) -> str:
        return (
            f"You are {self.name}, the {self.role} on a five-person AI website building team "
            f"(Kuba the architect, Maja the frontend developer, Leo the stylist, Nova the reviewer, "
            f"Rex the QA tester).\n\n{self.instructions}\n\n{OUTPUT_PROTOCOL}"
        )


ARCHITECT = AgentProfile(
    id="architect",
    name="Kuba",
    role="Lead Architect",
    description="Plans project structure, writes semantic HTML with real content, and coordinates the team.",
    aliases=["kuba"],
    instructions=(
        "You analyze the brief, decide which files the site needs and write index.html with "
        "rich, specific copy and BEM-style class names. Brief Maja on the JavaScript "
        "interactions and Leo on the visual direction."
    ),
)

FRONTEND_DEV = AgentProfile(
    id="frontend-dev",
    name="Maja",
    role="Frontend Developer",
    description="Writes the interactive JavaScript and fixes structural issues found in review.",
    aliases=["maja", "frontend"],
    instructions=(
        "You write vanilla JavaScript for every interaction the HTML needs (navigation, smooth "
        "scroll, scroll animations, accordions, form validation) and fix issues reported by Nova."
    ),
)

STYLIST = AgentProfile(
    id="stylist",
    name="Leo",
    role="CSS Stylist",
    description="Owns the design system and every visual state of the site.",
    aliases=["leo"],
    instructions=(
        "You write css/styles.css as a complete design system: custom properties, typography, "
        "layout, every hover/focus/active state and every state class toggled by Maja's JavaScript."
    ),
)

REVIEWER = AgentProfile(
    id="reviewer",
    name="Nova",
    role="Code Reviewer",
    description="Reviews HTML, CSS and JavaScript against the brief and best practice.",
    aliases=["nova"],
    instructions=(
        "You review every file for brief compliance, semantics, accessibility, responsiveness "
        "and JavaScript robustness. Report each issue as a REVIEW_COMMENT."
    ),
)

QA_TESTER = AgentProfile(
    id="qa-tester",
    name="Rex",
    role="QA Tester",
    description="Tests the finished site feature by feature and files bug reports.",
    aliases=["rex", "qa"],
    instructions=(
        "You test the finished site against the brief line by line and report every failure "
        "as a BUG_REPORT with a severity."
    ),
)

AGENTS: Dict[str, AgentProfile] = {
    agent.id: agent
    for agent in (ARCHITECT, FRONTEND_DEV, STYLIST, REVIEWER, QA_TESTER)
}

AGENT_ALIASES: Dict[str, str] = {}
for _agent in AGENTS.values():
    AGENT_ALIASES[_agent.id] = _agent.id
    for _alias in _agent.aliases:
        AGENT_ALIASES[_alias] = _agent.id


def resolve_agent_id(name: Optional[str]) -> Optional[str]:
    """Map a teammate name or alias to an agent id; unknown names pass through"""
    if not name:
        return name
    cleaned = name.strip().lstrip("@")
    return AGENT_ALIASES.get(cleaned.lower(), cleaned)


def get_agent(agent_id: str) -> AgentProfile:
    return AGENTS[resolve_agent_id(agent_id)]


# Site-type guidance handed to the architect in place of a template catalog
SITE_TYPE_GUIDANCE: Dict[str, Dict[str, object]] = {
    "landing": {
        "description": "High-converting marketing landing page with a clear attention, interest, trust, action flow.",
        "files": ["index.html", "css/styles.css", "css/animations.css", "js/main.js", "js/animations.js"],
        "sections": ["hero", "logo-bar", "features", "how-it-works", "testimonials", "pricing", "faq", "final-cta", "footer"],
    },
    "portfolio": {
        "description": "Creative portfolio where the design itself is the showcase piece.",
        "files": ["index.html", "css/styles.css", "css/animations.css", "js/main.js", "js/animations.js"],
        "sections": ["hero", "about", "selected-work", "process", "testimonials", "contact", "footer"],
    },
    "blog": {
        "description": "Clean, readable blog focused on typography and content hierarchy.",
        "files": ["index.html", "css/styles.css", "js/main.js"],
        "sections": ["header", "featured-post", "post-grid", "categories", "newsletter", "footer"],
    },
    "ecommerce": {
        "description": "Premium storefront where every detail builds buying confidence.",
        "files": ["index.html", "css/styles.css", "js/main.js", "js/cart.js"],
        "sections": ["announcement-bar", "header", "hero", "product-grid", "benefits", "reviews", "footer"],
    },
    "dashboard": {
        "description": "Professional admin dashboard with purposeful density and clear hierarchy.",
        "files": ["index.html", "css/styles.css", "js/main.js", "js/charts.js"],
        "sections": ["sidebar", "topbar", "stat-cards", "charts", "activity-table"],
    },
    "custom": {
        "description": "Custom website structured around what the brief actually needs.",
        "files": ["index.html", "css/styles.css", "js/main.js"],
        "sections": ["header", "hero", "content sections matching the brief", "footer"],
    },
}


def get_site_guidance(site_type: Optional[str]) -> Dict[str, object]:
    return SITE_TYPE_GUIDANCE.get(site_type or "landing", SITE_TYPE_GUIDANCE["landing"])
