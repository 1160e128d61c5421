# ABOUTME: Holds the static subject taxonomy for both papers of the exam.
# ABOUTME: CSAT subjects form the gating group that only decides qualification.

from typing import List, Mapping

from .schemas import SubjectDefinition

SUBJECTS: Mapping[str, SubjectDefinition] = {
    s.id: s
    for s in (
        SubjectDefinition("polity", "Indian Polity", 0.18, 0.015, "conceptual"),
        SubjectDefinition("history_modern", "Modern History", 0.10, 0.025, "factual"),
        SubjectDefinition("history_ancient", "Ancient/Medieval", 0.05, 0.030, "factual"),
        SubjectDefinition("economy", "Economy", 0.14, 0.010, "conceptual"),
        SubjectDefinition("environment", "Environment & Ecology", 0.16, 0.020, "analytical"),
        SubjectDefinition("geography", "Geography", 0.12, 0.012, "conceptual"),
        SubjectDefinition("science", "Science & Tech", 0.08, 0.018, "dynamic"),
        SubjectDefinition("current_affairs", "Current Affairs", 0.17, 0.040, "factual"),
        SubjectDefinition("csat_quant", "Quant (Math)", 0.40, 0.005, "analytical", paper="CSAT", gating=True),
        SubjectDefinition("csat_logic", "Logical Reasoning", 0.25, 0.005, "analytical", paper="CSAT", gating=True),
        SubjectDefinition("csat_rc", "Reading Comprehension", 0.35, 0.008, "inference", paper="CSAT", gating=True),
    )
}


def scoring_subjects(subjects: Mapping[str, SubjectDefinition] = SUBJECTS) -> List[SubjectDefinition]:
    return [s for s in subjects.values() if not s.gating]


def gating_subjects(subjects: Mapping[str, SubjectDefinition] = SUBJECTS) -> List[SubjectDefinition]:
    return [s for s in subjects.values() if s.gating]
