"""Static enhancement templates used when no AI provider is available."""

from __future__ import annotations

from typing import Dict

TEMPLATES: Dict[str, str] = {
    "balanced": (
        "Context:\n{prompt}\n\n"
        "Requirements:\n"
        "- Give a complete, detailed answer\n"
        "- Organise the answer into clear sections\n"
        "- Add examples where they help\n"
        "- Check the reasoning before concluding\n\n"
        "Expected Output:\n"
        "A well-structured response that addresses the request directly."
    ),
    "ultrathink": (
        "[Deep Reasoning Request]\n\n"
        "Core Question:\n{prompt}\n\n"
        "Reasoning Framework:\n"
        "1. Decompose the problem and list its assumptions and constraints.\n"
        "2. Work through it step by step, showing each step.\n"
        "3. Reflect: what might be missing, and which other approaches exist?\n"
        "4. Rate confidence (high/medium/low) for each conclusion.\n"
        "5. Re-check the logic against edge cases.\n\n"
        "Think systematically before answering."
    ),
    "coding": (
        "Programming Task:\n{prompt}\n\n"
        "Technical Requirements:\n"
        "1. State the inputs, outputs and constraints.\n"
        "2. Write readable code that handles edge cases.\n"
        "3. Keep the structure modular and idiomatic for the language.\n"
        "4. Include test cases, boundary conditions included.\n"
        "5. Explain the approach and its time/space complexity.\n\n"
        "Provide a complete, working solution."
    ),
    "analysis": (
        "Analytical Task:\n{prompt}\n\n"
        "Analysis Framework:\n"
        "1. Define the scope and its boundaries.\n"
        "2. Identify the relevant data and its limitations.\n"
        "3. Break the subject into components and examine their relationships.\n"
        "4. Support every point with evidence and state confidence.\n"
        "5. Synthesise conclusions and suggest next steps.\n\n"
        "Use clear sections and evidence-based reasoning."
    ),
    "creative": (
        "Creative Challenge:\n{prompt}\n\n"
        "Creative Guidelines:\n"
        "- Go beyond the obvious interpretation\n"
        "- Explore several directions before choosing one\n"
        "- Use vivid, sensory detail\n"
        "- Aim for emotional resonance\n\n"
        "Develop the strongest idea in rich detail."
    ),
}


def enhance_with_template(prompt: str, mode: str = "balanced") -> str:
    """Wrap ``prompt`` in the static template for ``mode``.

    Unknown modes use the balanced template.
    """
    template = TEMPLATES.get(mode, TEMPLATES["balanced"])
    return template.format(prompt=prompt)
