from typing import FrozenSet, List, NamedTuple, Pattern, Sequence, Set, Tuple
import re


def _vocabulary(*terms: str) -> Pattern:
    # Lookarounds instead of \b so terms ending in symbols (c++, c#, ci/cd) still match
    return re.compile(r"(?<![\w])(?:" + "|".join(terms) + r")(?![\w])", re.IGNORECASE)


SKILL_PATTERNS: List[Tuple[str, Pattern]] = [
    ("languages", _vocabulary(
        "javascript", "typescript", "python", "java", r"c\+\+", "c#", "php", "ruby",
        "golang", "rust", "swift", "kotlin", "scala", "matlab", "sql"
    )),
    ("frameworks", _vocabulary(
        "react", "angular", "vue", r"node\.?js", "express", "django", "flask", "fastapi",
        "spring", "rails", "laravel", "symfony", "hibernate", "redux", "mobx", "rxjs",
        "jest", "cypress", "selenium", "pytest"
    )),
    ("cloud_devops", _vocabulary(
        "aws", "azure", "gcp", "google cloud", "docker", "kubernetes", "terraform",
        "ansible", "jenkins", "github actions", "gitlab ci", "circleci", "heroku",
        "vercel", "netlify"
    )),
    ("databases", _vocabulary(
        "postgresql", "mysql", "mongodb", "redis", "elasticsearch", "cassandra",
        "dynamodb", "firestore", "sqlite", "oracle", "sql server"
    )),
    ("tools", _vocabulary(
        "git", "webpack", "vite", "babel", "eslint", "prettier", "figma", "sketch",
        "photoshop", "illustrator", "linux", "bash", "powershell", "vim", "vscode"
    )),
    ("methodologies", _vocabulary(
        "agile", "scrum", "kanban", "devops", "ci/cd", "tdd", "bdd", "microservices",
        "rest", "graphql", "api design", "system design", "performance optimization"
    )),
]

# Variant spellings folded onto one name
CANONICAL_SKILLS = {
    "nodejs": "node.js",
    "google cloud": "gcp",
}

# (required phrase, any of these phrases, workflow name)
WORKFLOW_INDICATORS: List[Tuple[str, Sequence[str], str]] = [
    ("first", ("then",), "Step-by-step process methodology"),
    ("planning", ("execution", "implementation"), "Planning and execution workflow"),
    ("testing", ("deploy", "release"), "Testing and deployment process"),
    ("review", ("code", "pull request"), "Code review workflow"),
    ("debug", ("fix", "solve"), "Debugging and problem-solving methodology"),
    ("design", ("prototype", "iterate"), "Design and iteration process"),
    ("data", ("analysis", "processing"), "Data analysis and processing workflow"),
    ("requirement", ("specification",), "Requirements gathering and specification"),
    ("stakeholder", ("communication",), "Stakeholder communication process"),
]

TECH_TOPICS = _vocabulary(
    "react", "python", "javascript", "typescript", "sql", "aws", "docker", "kubernetes",
    r"node\.js", "express", "mongodb", "postgresql", "api", "frontend", "backend",
    "database", "microservices", "devops", "ci/cd", "testing", "agile", "scrum"
)

BUSINESS_TOPICS = _vocabulary(
    "project", "management", "leadership", "strategy", "planning", "analysis",
    "optimization", "performance", "security", "scalability", "architecture",
    "design", "implementation"
)


class ExtractionResult(NamedTuple):
    skills: FrozenSet[str]
    workflows: FrozenSet[str]

    @property
    def is_empty(self) -> bool:
        return not self.skills and not self.workflows


def extract_skills(text: str) -> Set[str]:
    """Match known skill vocabulary, normalized to lowercase names"""

    skills = set()
    for _group, pattern in SKILL_PATTERNS:
        for match in pattern.findall(text or ""):
            name = match.lower()
            skills.add(CANONICAL_SKILLS.get(name, name))
    return skills


def extract_workflows(text: str) -> Set[str]:
    """Detect workflows from co-occurring process indicator phrases"""

    lower_text = (text or "").lower()
    return {
        name for required, any_of, name in WORKFLOW_INDICATORS
        if required in lower_text and any(phrase in lower_text for phrase in any_of)
    }


def extract(text: str) -> ExtractionResult:
    """Extract skills and workflows from an answer"""
    return ExtractionResult(
        skills=frozenset(extract_skills(text)),
        workflows=frozenset(extract_workflows(text))
    )


def extract_key_topics(texts: Sequence[str]) -> List[str]:
    """Technical and business topics mentioned across texts, in first-seen order"""

    topics: List[str] = []
    seen = set()
    for text in texts:
        for pattern in (TECH_TOPICS, BUSINESS_TOPICS):
            for match in pattern.findall(text or ""):
                topic = match.lower()
                if topic not in seen:
                    seen.add(topic)
                    topics.append(topic)
    return topics
