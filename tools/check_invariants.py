#!/usr/bin/env python3
"""UmojaHub invariant checks against the shipped policy files."""

import json
import math
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
TRUST_PATH = ROOT / "config" / "trust_params.json"
EDUCATION_PATH = ROOT / "config" / "education_policy.json"

TIER_ORDER = ["ESTABLISHED", "TRUSTED", "ELITE"]
STUDENT_TIERS = ["BEGINNER", "INTERMEDIATE", "ADVANCED"]
STRENGTH_ORDER = ["SOLID", "STRONG", "EXCEPTIONAL"]


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_review_section(section: dict, label: str, errors: list[str]) -> None:
    """Validate the shared shape of a review dimension section."""
    if not section.get("dimensions"):
        errors.append(f"{label}.dimensions must not be empty")
    if len(set(section.get("dimensions", []))) != len(section.get("dimensions", [])):
        errors.append(f"{label}.dimensions must be unique")
    low = section.get("min_score", 0)
    high = section.get("max_score", 0)
    if not 1 <= low < high:
        errors.append(f"{label} score range must satisfy 1 <= min_score < max_score")


def check(trust_path: Path = TRUST_PATH, education_path: Path = EDUCATION_PATH) -> int:
    trust = load_json(trust_path)
    education = load_json(education_path)
    errors: list[str] = []

    # --- Trust cap invariants ---
    caps = trust["caps"]
    total = sum(caps[k] for k in ("verification", "transaction", "rating", "reliability"))
    if not math.isclose(total, 100.0, rel_tol=0.0, abs_tol=1e-9):
        errors.append(f"trust caps must sum to 100, got {total}")
    for name, value in caps.items():
        if value < 0:
            errors.append(f"cap {name} must be >= 0, got {value}")

    # --- Tier threshold invariants ---
    thresholds = trust["tier_thresholds"]
    for tier in TIER_ORDER:
        if tier not in thresholds:
            errors.append(f"tier_thresholds missing tier: {tier}")
    values = [thresholds.get(t) for t in TIER_ORDER if t in thresholds]
    if any(not 0 < v <= 100 for v in values):
        errors.append("tier thresholds must lie in (0, 100]")
    if values != sorted(values) or len(set(values)) != len(values):
        errors.append("tier thresholds must be strictly ascending ESTABLISHED < TRUSTED < ELITE")

    # --- Verification seed invariants ---
    initial = trust["verification"]["initial_score"]
    if initial != caps["verification"]:
        errors.append(
            f"initial verification score must equal the verification cap "
            f"({caps['verification']}), got {initial}"
        )
    established = thresholds.get("ESTABLISHED", 0)
    trusted = thresholds.get("TRUSTED", 101)
    if not established <= initial < trusted:
        errors.append("a freshly verified farmer must land in ESTABLISHED")

    # --- Curve invariants ---
    curve = trust["transaction_curve"]
    if curve["order_points_cap"] + curve["volume_points_cap"] > caps["transaction"]:
        errors.append("transaction curve parts must not exceed the transaction cap")
    if curve["volume_scale"] <= 0 or curve["volume_ceiling"] <= 0:
        errors.append("transaction volume scale and ceiling must be > 0")
    if trust["rating_curve"]["confidence_k"] <= 0:
        errors.append("rating confidence_k must be > 0")
    reliability = trust["reliability"]
    if not 0 < reliability["on_time_threshold"] <= 1:
        errors.append("reliability on_time_threshold must be in (0, 1]")
    if not 0 <= reliability["ruled_against_factor"] < 1:
        errors.append("reliability ruled_against_factor must be in [0, 1)")

    # --- Review invariants ---
    peer = education["peer_review"]
    lecturer = education["lecturer_review"]
    check_review_section(peer, "peer_review", errors)
    check_review_section(lecturer, "lecturer_review", errors)
    if peer.get("reviewer_sample_size", 0) < 1:
        errors.append("peer_review.reviewer_sample_size must be >= 1")
    if lecturer.get("min_comment_words", 0) < 50:
        errors.append("lecturer_review.min_comment_words must be >= 50")

    # --- Student tier invariants ---
    for rule in education["student_tier_rules"]:
        tier, counted = rule["tier"], rule["counted_tier"]
        if tier not in STUDENT_TIERS or counted not in STUDENT_TIERS:
            errors.append(f"unknown student tier in rule {tier}/{counted}")
        elif STUDENT_TIERS.index(tier) != STUDENT_TIERS.index(counted) + 1:
            errors.append(f"{tier} must be unlocked by the tier directly below it")
        if rule["min_projects"] < 1:
            errors.append(f"{tier} unlock must require at least one project")

    # --- Portfolio strength invariants ---
    # A stronger label must never be easier to reach than a weaker one.
    by_strength = {r["strength"]: r for r in education["portfolio_strength_rules"]}
    for weaker, stronger in zip(STRENGTH_ORDER, STRENGTH_ORDER[1:]):
        if weaker not in by_strength or stronger not in by_strength:
            errors.append(f"portfolio_strength_rules missing {weaker} or {stronger}")
            continue
        w, s = by_strength[weaker], by_strength[stronger]
        if s["min_projects"] < w["min_projects"] or s["min_average_score"] < w["min_average_score"]:
            errors.append(f"{stronger} must be at least as demanding as {weaker}")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
