# ABOUTME: Prompt templates for the LLM-backed stage collaborators of the turn pipeline.
# ABOUTME: Each template asks for a single JSON document matching the stage's structured output.

SYSTEM_PROMPT = """
You are part of the Keeper, the game master of an investigative horror narrative.
You only ever answer with a single JSON document and nothing else.
"""

INTENT_ANALYSIS_PROMPT = """
# Session Summary
{session_summary}

# Player Input
{raw_input}

# Task
Analyse what the player intends to do this turn.

Respond with JSON:
{{"participant": "<acting character name>", "action": "<what they attempt>",
  "action_type": "<exploration|social|combat|stealth|chase|mental|environmental|narrative>",
  "target_name": "<target or null>", "target_intent": "<why they target it or null>",
  "requires_dice": <true|false>}}
"""

CONTEXT_ENRICHMENT_PROMPT = """
# Session Summary
{session_summary}

# Analysed Intent
{intent}

# Task
List the rules and reference facts the Keeper needs to adjudicate this intent.

Respond with JSON:
{{"rules": [{{"title": "...", "text": "..."}}], "references": ["..."], "notes": {{}}}}
"""

ACTION_RESOLUTION_PROMPT = """
# Session Summary
{session_summary}

# Analysed Intent
{intent}

# Player Input
{raw_input}

# Task
Resolve the action. Describe only what mechanically happens, not prose.
Classify the time it takes: "instant" (a glance, a word), "short" (a search, a conversation),
"scene" (anything that uses up the whole location).
If the action moves the character somewhere else, name the destination in "requested_location".

Respond with JSON:
{{"outcomes": [{{"participant": "...", "participant_id": "...", "result": "...",
  "dice_rolls": ["..."], "time_cost": "instant|short|scene", "time_elapsed_minutes": 0,
  "location_changes": ["..."], "requested_location": null}}]}}
"""

REACTION_ANALYSIS_PROMPT = """
# Session Summary
{session_summary}

# What Just Happened
{trigger_text}

# Task
Decide, for each non-player character present, whether they respond this turn.

Respond with JSON:
{{"decisions": [{{"participant_id": "...", "participant_name": "...", "will_respond": <true|false>,
  "response_type": "none|dialogue|action|hostile|assist|flee", "urgency": "low|medium|high",
  "reasoning": "..."}}]}}
"""

REACTION_EXECUTION_PROMPT = """
# Session Summary
{session_summary}

# Responding Characters
{decisions}

# Task
Resolve what each responding character does. Use the same outcome format as player actions.

Respond with JSON:
{{"outcomes": [{{"participant": "...", "participant_id": "...", "result": "...",
  "dice_rolls": [], "time_cost": "instant|short|scene", "time_elapsed_minutes": 0,
  "location_changes": []}}]}}
"""

LOCATION_DECISION_PROMPT = """
# Session Summary
{session_summary}

# Pending Transition Request
{transition_request}

# Task
Decide whether the story moves to a new location now, and give the narrator a one-sentence
direction for this turn.

Respond with JSON:
{{"should_transition": <true|false>, "target_location": {{"id": "...", "name": "...",
  "descriptor": "...", "description": "..."}} or null, "reasoning": "...",
  "narrative_direction": "..."}}
"""

NARRATIVE_GENERATION_PROMPT = """
# Session Summary
{session_summary}

# Player Input
{raw_input}

# Directives
{directives}

# Task
Write the Keeper's narration for this turn in second person, present tense.
Honour the directives. Only reveal facts the outcomes justify.
List notable events and lasting conditions at the current location, rate the
scene's tension from 0 (calm) to 10 (terror), and report how present
participants' attitudes toward the protagonist shifted, by participant id.

Respond with JSON:
{{"narrative_text": "...", "revealed_facts": ["..."], "new_events": ["..."],
  "new_conditions": ["..."], "tension_level": 4,
  "relationship_changes": [{{"participant_id": "...", "attitude_change": -10, "reason": "..."}}]}}
"""