"""
Skills: named, restricted views of the tool set plus a system prompt addendum.

Three built-in skills ship with the registry. Additional skills can be
loaded from a directory of YAML files:

skills_directory/
  my_skill/
    skill.yaml
  other_skill.yaml

skill.yaml:
  name: networking
  description: Service and ingress troubleshooting
  tools: [get_resource, list_resources, describe_resource, get_events]
  instructions: |
    Focus: ...
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

import structlog
import yaml

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Skill:
    """A named group of tools and a specialized system message."""

    name: str
    description: str
    tool_names: Tuple[str, ...]
    system_suffix: str
    reasoning_effort: str = ""


class SkillRegistry:
    """Catalog of available skills, looked up by name."""

    def __init__(self):
        self._skills: Dict[str, Skill] = {}

    def register(self, skill: Skill) -> None:
        """Add a skill, replacing any skill with the same name."""
        self._skills[skill.name] = skill

    def get(self, name: str) -> Optional[Skill]:
        """Return the skill called ``name`` or None."""
        return self._skills.get(name)

    def list(self) -> List[str]:
        """Return all registered skill names, sorted."""
        return sorted(self._skills)

    def all(self) -> Dict[str, Skill]:
        """Return a copy of the name -> skill mapping."""
        return dict(self._skills)

    def filter_tools(self, skill_name: str, all_tools: Sequence[T]) -> List[T]:
        """Return only the tools allowed by ``skill_name``.

        An empty or unknown skill name returns every tool: a typo in the
        configuration must not leave the agent without tools. Input order is
        preserved and ``all_tools`` is not modified.
        """
        skill = self._skills.get(skill_name) if skill_name else None
        if skill is None:
            return list(all_tools)

        allowed = set(skill.tool_names)
        return [tool for tool in all_tools if tool.name in allowed]

    def system_message_suffix(self, skill_name: str) -> str:
        """Return the skill-specific system message suffix ("" if none)."""
        if not skill_name:
            return ""
        skill = self._skills.get(skill_name)
        if skill is None:
            return ""
        return skill.system_suffix

    def __contains__(self, name: str) -> bool:
        return name in self._skills

    def __len__(self) -> int:
        return len(self._skills)


BUILTIN_SKILLS = (
    Skill(
        name="diagnostics",
        description="Diagnose unhealthy pods, deployments, and workloads",
        tool_names=(
            "get_pod_diagnostics",
            "get_logs",
            "get_events",
            "describe_resource",
            "get_cluster_health",
            "get_resource",
        ),
        system_suffix="""Focus: Root-cause analysis and remediation.
Workflow: Always start by fetching diagnostics/description, then events, then logs (with previous=true for crashes).
Prioritize: CrashLoopBackOff > OOMKilled > ImagePullBackOff > Pending (scheduling) > other.
For each issue found, provide a specific fix (kubectl command or YAML patch).""",
    ),
    Skill(
        name="security",
        description="RBAC auditing, security posture, and policy analysis",
        tool_names=(
            "check_rbac",
            "get_resource",
            "describe_resource",
            "list_resources",
        ),
        system_suffix="""Focus: Security posture and RBAC analysis.
Check for: Overly permissive ClusterRoleBindings, wildcard verbs/resources, secrets mounted unnecessarily, containers running as root, missing network policies, service accounts with excessive permissions.
When auditing RBAC: enumerate role bindings, check for privilege escalation paths, verify least-privilege principle.
Flag any security concerns with severity (Critical/High/Medium/Low).""",
    ),
    Skill(
        name="optimization",
        description="Resource utilization, cost optimization, and scaling",
        tool_names=(
            "get_cluster_health",
            "list_resources",
            "get_resource",
            "describe_resource",
            "get_pod_diagnostics",
        ),
        system_suffix="""Focus: Resource efficiency, cost optimization, and scaling recommendations.
Analyze: CPU/memory requests vs limits, over-provisioned pods, under-utilized nodes, missing resource requests.
Recommend: Right-sized resource requests, HPA configurations, PDB settings, node pool sizing.
Compare actual usage patterns with configured limits when data is available.""",
    ),
)


class SkillLoader:
    """
    Loads user-defined skills from a directory.

    Each skill is either ``<dir>/<skill>/skill.yaml`` or ``<dir>/<skill>.yaml``
    with the keys ``name``, ``description``, ``tools`` and ``instructions``.
    """

    def __init__(self, skills_directory: str):
        self.skills_directory = Path(skills_directory).expanduser()

    def load_skill(self, skill_file: Path) -> Optional[Skill]:
        """
        Loads a single skill definition.

        Args:
            skill_file: Path to the YAML file

        Returns:
            Skill if the file is valid, None otherwise
        """
        try:
            with open(skill_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("skill_load_failed", path=str(skill_file), error=str(e))
            return None

        if not isinstance(data, dict):
            logger.warning("skill_invalid", path=str(skill_file), reason="not a mapping")
            return None

        name = data.get('name')
        tools = data.get('tools') or []
        if not name or not isinstance(tools, list) or not tools:
            logger.warning("skill_invalid", path=str(skill_file), reason="name and tools are required")
            return None

        return Skill(
            name=str(name),
            description=str(data.get('description', '')),
            tool_names=tuple(str(tool) for tool in tools),
            system_suffix=str(data.get('instructions', '')).strip(),
            reasoning_effort=str(data.get('reasoning_effort', '') or ''),
        )

    def load_skills(self) -> List[Skill]:
        """Loads every valid skill found in the directory."""
        if not self.skills_directory.is_dir():
            return []

        candidates = []
        for entry in sorted(self.skills_directory.iterdir()):
            if entry.is_dir():
                skill_file = entry / "skill.yaml"
                if skill_file.exists():
                    candidates.append(skill_file)
            elif entry.suffix in (".yaml", ".yml"):
                candidates.append(entry)

        skills = []
        for skill_file in candidates:
            skill = self.load_skill(skill_file)
            if skill:
                skills.append(skill)
        return skills


def new_skill_registry(skills_directory: Optional[str] = None) -> SkillRegistry:
    """Return a registry with the built-in skills and any user-defined ones.

    User-defined skills override built-ins with the same name.
    """
    registry = SkillRegistry()
    for skill in BUILTIN_SKILLS:
        registry.register(skill)

    if skills_directory:
        for skill in SkillLoader(skills_directory).load_skills():
            logger.debug("skill_loaded", skill=skill.name, tools=len(skill.tool_names))
            registry.register(skill)

    return registry
