"""Canned replies used when the model stays rate limited through every retry."""

import random
from typing import Optional

DEGRADED_NOTICE = (
    "Response generated using fallback due to API rate limits. "
    "Please try again in a few minutes for full AI responses."
)

_TEMPLATES = (
    """I understand you want help with: "{prompt}".

Here is a sample script layout to start from:

**FADE IN:**

**EXT. LOCATION - TIME OF DAY**

*[Scene description and action]*

**CHARACTER NAME**
Dialogue goes here.

**[Additional action or camera direction]**

**FADE OUT.**

Demand is high right now and requests are being rate limited. Please try again shortly for a detailed, personalised response.""",
    """Thanks for your request about: "{prompt}".

While the assistant is limited, here is a general framework to adapt:

**SCENE STRUCTURE:**
- **Setup:** Establish the setting and characters
- **Conflict:** Introduce the main challenge or goal
- **Resolution:** Show how the situation develops

**VISUAL ELEMENTS:**
- Lighting (golden hour, hard shadows)
- Camera angles (wide for establishing, close-ups for emotion)
- A colour palette that matches the mood

Please send your request again in a moment for a tailored answer.""",
    """You're working on: "{prompt}".

A quick creative starting point:

**STORY BEATS:**
1. **Opening Image** - set the tone and the world
2. **Inciting Incident** - what sets things in motion?
3. **Midpoint** - a turn or a revelation
4. **Climax** - the main confrontation
5. **Resolution** - how things settle

**PRODUCTION NOTES:**
- Lean on visual storytelling
- Keep dialogue short and purposeful
- Think about practical locations and budget

The service is at capacity. Retry shortly for a full response.""",
)

FALLBACK_POOL_SIZE = len(_TEMPLATES)


def fallback_response(prompt: str, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    template = _TEMPLATES[rng.randrange(len(_TEMPLATES))]
    return template.format(prompt=prompt)
