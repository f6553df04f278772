# matcher.py
from typing import Dict, Iterable, List, Union

from database import get_user, get_all_users
from config import MAX_MATCH_RESULTS, MIN_COMMON_INTERESTS


def parse_preferences(value: Union[str, Iterable[str], None]) -> List[str]:
    """Normalize a comma-separated string or list of tags into a de-duplicated list."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    # strip whitespace, lowercase, keep first occurrence order
    parts = []
    for p in value:
        p = str(p).strip().lower()
        if p and p not in parts:
            parts.append(p)
    return parts


def score_common_preferences(set_a: set, set_b: set) -> int:
    return len(set_a & set_b)


def opposite_role(role: str) -> str:
    return "mentee" if role == "mentor" else "mentor"


def pair_mentors_with_mentees(mentors: List[Dict], mentees: List[Dict]) -> Dict:
    """
    Greedily pair each mentor, in input order, with the remaining mentee that
    shares the most preferences.

    Ties go to the mentee that comes first. Any remaining mentee is acceptable,
    so a mentor with no overlap still gets the first one left. Assignments are
    never revisited, which makes this a local optimum rather than a stable or
    maximum-weight matching.

    Returns {"pairs": [{"mentor", "mentee"}], "unmatched_mentors": [...],
    "unmatched_mentees": [...]}. The input lists are not modified.
    """
    pool = [(mentee, set(mentee.get("preferences") or ())) for mentee in mentees]
    pairs = []
    unmatched_mentors = []

    for mentor in mentors:
        if not pool:
            unmatched_mentors.append(mentor)
            continue
        mentor_prefs = set(mentor.get("preferences") or ())
        best_index = None
        best_score = float("-inf")
        for index, (_, mentee_prefs) in enumerate(pool):
            score = score_common_preferences(mentor_prefs, mentee_prefs)
            if score > best_score:
                best_index, best_score = index, score
        mentee, _ = pool.pop(best_index)
        pairs.append({"mentor": mentor, "mentee": mentee})

    return {
        "pairs": pairs,
        "unmatched_mentors": unmatched_mentors,
        "unmatched_mentees": [mentee for mentee, _ in pool],
    }


def suggest_matches_for_user(user_id: str) -> List[Dict]:
    """
    Return a ranked list of candidate partners for `user_id` among users of the opposite role.
    Each candidate is a dict: {id, username, common_preferences: [...], score: N}
    """
    me = get_user(user_id)
    if not me:
        return []

    my_prefs = parse_preferences(me["preferences"])
    candidates = []
    for other in get_all_users(role=opposite_role(me["role"])):
        other_prefs = parse_preferences(other["preferences"])
        score = score_common_preferences(set(my_prefs), set(other_prefs))
        if score >= MIN_COMMON_INTERESTS:
            candidates.append({
                "id": other["user_id"],
                "username": other["username"],
                "common_preferences": [p for p in my_prefs if p in other_prefs],
                "score": score
            })

    # sort by descending score (more preferences in common first), then by username
    candidates.sort(key=lambda x: (-x["score"], x.get("username") or ""))
    return candidates[:MAX_MATCH_RESULTS]
