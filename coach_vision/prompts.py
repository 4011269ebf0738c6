"""Prompt text for the step planner and the visual locator."""

from coach_os.preferences import CoachContext

PLANNER_SYSTEM_PROMPT = (
    "You are an on-device UI setup coach. Use the screenshot. "
    "Return ONLY a short instruction of what to tap next. No extra text."
)

LOCATOR_PROMPT_TEMPLATE = """You are a precise UI element locator for a phone screenshot.
Task: find the single tap target that best matches the instruction.

Instruction: {instruction}

Rules:
0) Prefer an element whose visible label EXACTLY matches the instruction's key text (e.g., Open/Continue/Install).
   If multiple matches exist, choose the most prominent actionable button on the main flow.
0b) Ignore "Sponsored" / advertisement cards and their Install buttons unless the instruction explicitly mentions Sponsored/Ad.
1) Return ONLY a single JSON object with keys x,y,w,h,matched_text (no markdown, no extra text).
2) x,y is the TOP-LEFT of the target's bounding box; w,h are width/height.
3) All values MUST be normalized to the image size in [0,1].
4) The box MUST tightly cover the tappable element (e.g., the whole "Continue" button).
5) NEVER return all zeros. Only return {{"x":0,"y":0,"w":0,"h":0,"matched_text":""}} if the target does not exist anywhere on screen.

Output format (ONLY this):
{{"x":0.12,"y":0.34,"w":0.56,"h":0.08,"matched_text":"Continue"}}"""


def build_planner_user_prompt(context: CoachContext) -> str:
    lines = ["Goal: continue smart home setup."]
    if context.expected_app_name:
        lines.append(f"App: {context.expected_app_name}")
    if context.expected_app_query:
        lines.append(f"App query: {context.expected_app_query}")
    if context.selected_device:
        lines.append(f"Device: {context.selected_device}")
    lines.append('Return only something like: "Tap the + button" or "Tap Open" or "Tap Install".')
    return "\n".join(lines) + "\n"


def build_locator_prompt(instruction: str) -> str:
    return LOCATOR_PROMPT_TEMPLATE.format(instruction=instruction)
