"""Hospital formulary classification for antimicrobials under AMS review."""

from enum import Enum


class FormularyClass(Enum):
    """Stewardship category of a drug."""
    MONITORED = "Monitored"
    RESTRICTED = "Restricted"


MONITORED_DRUGS = frozenset({
    "imipenem",
    "meropenem",
    "ertapenem",
    "doripenem",
    "gentamicin",
    "amikacin",
    "ciprofloxacin",
    "levofloxacin",
    "moxifloxacin",
    "aztreonam",
    "ceftolozane-tazobactam",
    "colistin",
    "linezolid",
    "tigecycline",
    "vancomycin",
    "cefepime",
})

RESTRICTED_DRUGS = frozenset({
    "ciprofloxacin",
    "levofloxacin",
    "moxifloxacin",
    "ceftriaxone",
    "cefotaxime",
    "ceftazidime",
    "cefixime",
    "cefpodoxime",
    "gentamicin",
    "amikacin",
    "clindamycin",
})


def classify_drug(drug_name: str | None) -> FormularyClass | None:
    """Formulary class of a drug, matched case-insensitively.

    Drugs on both lists are reported as Monitored.
    """
    if not drug_name:
        return None
    name = drug_name.strip().lower()
    if name in MONITORED_DRUGS:
        return FormularyClass.MONITORED
    if name in RESTRICTED_DRUGS:
        return FormularyClass.RESTRICTED
    return None
