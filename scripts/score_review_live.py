"""
Live scoring check: calls the real completion API with sample reviews.
Run: python scripts/score_review_live.py
"""
import os
import sys
import time

# Ensure project root is on path
project_root = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))
sys.path.insert(0, project_root)

from dotenv import load_dotenv

load_dotenv(os.path.join(project_root, '.env'))

from services.review_scoring import ReviewScorer

scorer = ReviewScorer()
print(f"Scoring config: model={scorer.model}")
print(f"Base URL: {scorer.base_url}")
print()

# ── Test Cases ──────────────────────────────────────────────────────

CASES = [
    {
        "name": "Polished long-form review",
        "text": (
            "I recently had the pleasure of dining at Ganesha, and I must say, it was an "
            "extraordinary experience that exceeded all my expectations. From the moment I "
            "stepped inside, I was enveloped by an ambiance that transported me to a world of "
            "serenity and elegance. The service was exceptional and every dish was an explosion "
            "of flavors and aromas, meticulously prepared using fresh ingredients.\n"
        ),
    },
    {
        "name": "Short casual review",
        "text": "ok food, the naan was cold tho. would go back for the biryani i guess\n",
    },
]

# ── Run ─────────────────────────────────────────────────────────────

for i, case in enumerate(CASES):
    print(f"{'='*70}")
    print(f"TEST {i+1}: {case['name']}")
    print(f"{'='*70}")

    t0 = time.time()
    try:
        score = scorer.score(case["text"])
        print(f"  Score:    {score}")
    except Exception as e:
        print(f"  ERROR: {e}")
    print(f"  Time:     {time.time() - t0:.1f}s")
    print()

print("Done.")
