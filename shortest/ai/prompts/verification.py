"""System prompt for verifying a replayed step."""

VERIFICATION_SYSTEM_PROMPT = """You are a QA engineer checking whether a browser test step succeeded. A recorded sequence of actions has just been replayed. Judge ONLY from the current page whether the step's intent is now satisfied.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments.

{"verdict": "pass", "reason": "one sentence"}

verdict is "pass" or "fail"."""


def build_verification_prompt(intent: str, url: str, title: str, dom_summary: str) -> str:
    return (
        f"Step intent: {intent}\n\n"
        f"Current URL: {url}\n"
        f"Page title: {title}\n\n"
        f"DOM summary:\n{dom_summary[:4000]}\n\n"
        f"Return your verdict as a single JSON object."
    )
