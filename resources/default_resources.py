"""
resources/default_resources.py

Static support-resource catalog loaded at startup. Read-only at runtime.

Hotline numbers here are a correctness contract, not copy: 988 (call/text),
741741 (Crisis Text Line) and the other crisis numbers are rendered directly
to users in crisis.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Resource:
    id: str
    title: str
    description: str
    category: str
    type: str
    subcategory: Optional[str] = None
    url: Optional[str] = None
    phone: Optional[str] = None
    cultural_relevance: Tuple[str, ...] = ("all",)
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cultural_relevance"] = list(self.cultural_relevance)
        data["tags"] = list(self.tags)
        return data


DEFAULT_RESOURCES: Tuple[Resource, ...] = (
    # Crisis
    Resource(
        id="crisis_988",
        title="988 Suicide & Crisis Lifeline",
        description="Free, confidential support by call or text, any hour, for anyone in suicidal crisis or emotional distress",
        category="crisis", subcategory="suicide", type="crisis_hotline",
        phone="988", url="https://988lifeline.org",
        tags=("24/7", "confidential", "free"),
    ),
    Resource(
        id="crisis_text",
        title="Crisis Text Line",
        description="Text a trained crisis counselor any time, day or night, when talking out loud feels like too much",
        category="crisis", subcategory="suicide", type="crisis_hotline",
        phone="741741", url="https://www.crisistextline.org",
        tags=("24/7", "text", "confidential"),
    ),
    Resource(
        id="crisis_samhsa",
        title="SAMHSA National Helpline",
        description="Confidential treatment referral and information line for substance use and mental health conditions",
        category="crisis", subcategory="substance_abuse", type="crisis_hotline",
        phone="1-800-662-4357", url="https://www.samhsa.gov/find-help/national-helpline",
        tags=("24/7", "substance-abuse", "free"),
    ),
    Resource(
        id="lgbtq_thetrevorproject",
        title="The Trevor Project",
        description="Crisis counseling by phone, chat and text for LGBTQ young people",
        category="crisis", subcategory="lgbtq", type="crisis_hotline",
        phone="1-866-488-7386", url="https://www.thetrevorproject.org",
        cultural_relevance=("lgbtq", "poc"),
        tags=("lgbtq", "24/7", "crisis"),
    ),
    Resource(
        id="lgbtq_blackline",
        title="BlackLine",
        description="Peer crisis line centering Black LGBTQ callers, run by Black counselors",
        category="crisis", subcategory="lgbtq", type="crisis_hotline",
        phone="1-800-604-5841",
        cultural_relevance=("black", "african-american", "lgbtq"),
        tags=("crisis", "black", "lgbtq"),
    ),

    # Therapy
    Resource(
        id="therapy_inclusivetherapists",
        title="Inclusive Therapists",
        description="Directory of culturally responsive, identity-affirming therapists",
        category="mental_health", subcategory="therapy", type="therapy",
        url="https://www.inclusivetherapists.com",
        cultural_relevance=("black", "african-american", "poc", "lgbtq"),
        tags=("directory", "culturally-responsive", "lgbtq"),
    ),
    Resource(
        id="therapy_therapyforblackmen",
        title="Therapy for Black Men",
        description="Find therapists and coaches who understand the experiences of Black men",
        category="mental_health", subcategory="therapy", type="therapy",
        url="https://www.therapyforblackmen.org",
        cultural_relevance=("black", "african-american"),
        tags=("black-men", "culturally-specific", "therapist-directory"),
    ),
    Resource(
        id="therapy_betterhelp",
        title="BetterHelp",
        description="Online therapy with licensed counselors over video, phone or messaging",
        category="mental_health", subcategory="therapy", type="therapy",
        url="https://www.betterhelp.com",
        tags=("online", "affordable", "flexible"),
    ),

    # Employment
    Resource(
        id="employment_dol",
        title="Department of Labor Career Centers",
        description="Unemployment benefits, job search help and retraining programs after a layoff or job loss",
        category="employment", subcategory="job_loss", type="article",
        url="https://www.careeronestop.org",
        tags=("job-search", "free", "government"),
    ),
    Resource(
        id="employment_blackcareernetwork",
        title="Black Career Network",
        description="Job board, networking and mentorship for Black professionals building a career",
        category="employment", subcategory="career", type="article",
        url="https://www.blackcareernetwork.com",
        cultural_relevance=("black", "african-american"),
        tags=("job-board", "networking", "mentorship"),
    ),

    # Relationships
    Resource(
        id="relationship_couples_therapy",
        title="Couples Therapy Inc",
        description="Intensive couples therapy for partners working through infidelity, conflict or a breakup",
        category="relationship", subcategory="couples", type="therapy",
        url="https://couplestherapyinc.com",
        tags=("couples", "online", "culturally-aware"),
    ),
    Resource(
        id="relationship_gottman",
        title="The Gottman Institute",
        description="Research-based tools for communication, trust and repair in relationships",
        category="relationship", subcategory="couples", type="article",
        url="https://www.gottman.com",
        tags=("research-based", "communication", "tools"),
    ),
    Resource(
        id="fatherhood_nationalmec",
        title="National Fatherhood Initiative",
        description="Parenting and co-parenting support for dads",
        category="relationship", subcategory="fatherhood", type="article",
        url="https://www.fatherhood.org",
        tags=("fatherhood", "parenting", "co-parenting"),
    ),
    Resource(
        id="fatherhood_blackdads",
        title="Black Fathers Matter",
        description="Community and advocacy for Black fathers and their families",
        category="relationship", subcategory="fatherhood", type="support_group",
        cultural_relevance=("black", "african-american"),
        tags=("black-fathers", "community", "advocacy"),
    ),

    # Mental health
    Resource(
        id="anxiety_calm",
        title="Calm - Meditation & Sleep",
        description="Guided breathing, meditation and sleep stories for anxiety and racing thoughts",
        category="mental_health", subcategory="anxiety", type="app",
        url="https://www.calm.com",
        tags=("meditation", "sleep", "anxiety", "app"),
    ),
    Resource(
        id="depression_headspace",
        title="Headspace",
        description="Mindfulness exercises for low mood, depression and stress",
        category="mental_health", subcategory="depression", type="app",
        url="https://www.headspace.com",
        tags=("meditation", "mindfulness", "app"),
    ),
    Resource(
        id="depression_nami",
        title="NAMI Depression Support",
        description="Free peer support groups and education about depression from the National Alliance on Mental Illness",
        category="mental_health", subcategory="depression", type="support_group",
        url="https://www.nami.org", phone="1-800-950-6264",
        tags=("support-group", "free", "education"),
    ),
    Resource(
        id="stress_apa",
        title="APA Stress Management",
        description="Practical coping strategies for stress at work and at home",
        category="mental_health", subcategory="stress", type="article",
        url="https://www.apa.org/topics/stress",
        tags=("stress", "coping", "work-life-balance"),
    ),
    Resource(
        id="burnout_mindtools",
        title="Burnout Self-Test & Recovery",
        description="Check your burnout level and plan a recovery",
        category="mental_health", subcategory="burnout", type="article",
        url="https://www.mindtools.com/burnout",
        tags=("burnout", "self-test", "recovery"),
    ),

    # Identity
    Resource(
        id="identity_blackmentalhealth",
        title="Black Mental Health Matters",
        description="Advocacy and community fighting mental health stigma in Black communities",
        category="identity", subcategory="cultural", type="article",
        url="https://blackmentalhealthmatters.com",
        cultural_relevance=("black", "african-american"),
        tags=("advocacy", "community", "stigma"),
    ),
    Resource(
        id="identity_brothers",
        title="Brothers Standing Together",
        description="Support group for Black men talking through masculinity, pressure and identity",
        category="identity", subcategory="masculinity", type="support_group",
        cultural_relevance=("black", "african-american"),
        tags=("support-group", "black-men", "masculinity"),
    ),
)


def load_default_resources() -> List[Resource]:
    """Fresh list of the built-in catalog."""
    return list(DEFAULT_RESOURCES)
