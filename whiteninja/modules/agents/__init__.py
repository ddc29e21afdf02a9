from whiteninja.modules.agents.roster import (
    AGENTS,
    AgentProfile,
    get_agent,
    get_site_guidance,
    resolve_agent_id,
)

__all__ = [
    'AGENTS',
    'AgentProfile',
    'get_agent',
    'get_site_guidance',
    'resolve_agent_id',
]
