"""
System prompts and tool schemas shared by all LLM providers
"""

from ..models.directives import DirectiveType
from ..models.world import BuildingType, ResourceType

DIRECTIVE_TYPES = [t.value for t in DirectiveType]
BUILDING_TYPES = [b.value for b in BuildingType]
RESOURCE_TYPES = [r.value for r in ResourceType]
ACTION_TOOL_TYPES = ['move', 'attack', 'gather', 'build', 'communicate', 'idle']

# Keyed by unit type value
UNIT_PERSONALITIES = {
    'engineer': 'You gather resources and build structures. Prioritize nearby resources. '
                'Return to base when carrying resources.',
    'scout': 'You explore unknown areas and report enemy positions. Avoid combat. '
             'Move toward unexplored regions.',
    'soldier': 'You engage enemies in combat. Attack nearby threats. Follow attack commands.',
    'captain': 'You coordinate nearby troops. Issue orders to friendly units. Lead from the front.',
    'messenger': 'You carry messages between units. Move quickly to relay commands. Avoid danger.',
    'spy': 'You gather intelligence behind enemy lines. Report enemy positions. '
           'Stay hidden and avoid direct combat.',
    'siege': 'You bombard enemy positions from long range. Stay behind friendly lines. '
             'Target the strongest enemies.',
}

UNIT_SYSTEM_PROMPT_PREFIX = (
    "You are an AI controlling a unit in a real-time strategy game. "
    "Be decisive and brief.\n\nYour role: "
)

ACTION_TOOL_INSTRUCTION = "\n\nYou MUST respond by calling the take_action tool with your chosen action."

COMMANDER_SYSTEM_PROMPT = """You are a strategic commander in an RTS game. Issue high-level directives to your units. Be decisive. Focus on economy early, defense when threatened, aggression when strong.

CRITICAL: If a unit has a STANDING ORDER from the player, your directive for that unit MUST fulfill that order. Player commands are your top priority - never override, ignore, or contradict them. Only deviate if the unit is dead or the order is physically impossible."""

DIRECTIVE_TOOL_INSTRUCTION = "\n\nYou MUST respond by calling the issue_directives tool."

# Used by providers without forced tool calls (JSON mode instead)
DIRECTIVE_JSON_INSTRUCTIONS = """
Respond with a single JSON object and nothing else:
{"directives": [{"unitId": "U1", "type": "<directive type>", "target": {"col": 0, "row": 0}, "targetUnitId": "...", "buildingType": "...", "resourceType": "...", "priority": 3, "reasoning": "one sentence"}]}
Directive types: %s
Only unitId and type are required. Use 0-indexed col/row numbers from the map header.
""" % ", ".join(DIRECTIVE_TYPES)

ACTION_JSON_INSTRUCTIONS = """
Respond with a single JSON object and nothing else:
{"type": "<action>", "target": {"col": 0, "row": 0}, "targetUnitId": "...", "message": "...", "buildingType": "...", "details": "one sentence"}
Action types: %s
Only type is required.
""" % ", ".join(ACTION_TOOL_TYPES)

DIRECTIVE_TOOL = {
    "name": "issue_directives",
    "description": "Issue high-level directives to all your units.",
    "input_schema": {
        "type": "object",
        "properties": {
            "directives": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "unitId": {"type": "string", "description": "The unit ID to command."},
                        "type": {"type": "string", "enum": DIRECTIVE_TYPES, "description": "The directive type."},
                        "target": {
                            "type": "object",
                            "properties": {
                                "col": {"type": "number", "description": "0-indexed column (0 = left edge)."},
                                "row": {"type": "number", "description": "0-indexed row (0 = top edge)."},
                            },
                            "description": "Target grid position (0-indexed). Use the col/row numbers shown in the prompt.",
                        },
                        "targetUnitId": {"type": "string", "description": "Target unit ID (for escort/attack)."},
                        "buildingType": {"type": "string", "enum": BUILDING_TYPES,
                                         "description": "Building type (for build_structure)."},
                        "resourceType": {"type": "string", "enum": RESOURCE_TYPES,
                                         "description": "Resource type (for gather_resources)."},
                        "priority": {"type": "number", "description": "Priority 1-5 (5=highest)."},
                        "reasoning": {"type": "string", "description": "Brief reasoning (1 sentence)."},
                    },
                    "required": ["unitId", "type"],
                },
                "description": "Array of directives, one per unit.",
            },
        },
        "required": ["directives"],
    },
}

ACTION_TOOL = {
    "name": "take_action",
    "description": "Choose an action for this unit to take.",
    "input_schema": {
        "type": "object",
        "properties": {
            "type": {"type": "string", "enum": ACTION_TOOL_TYPES, "description": "The action type."},
            "target": {
                "type": "object",
                "properties": {
                    "col": {"type": "number", "description": "Grid column"},
                    "row": {"type": "number", "description": "Grid row"},
                },
                "description": "Target grid position for move/gather actions.",
            },
            "targetUnitId": {"type": "string", "description": "ID of the unit to attack (for attack actions)."},
            "message": {"type": "string", "description": "Message content (for communicate actions)."},
            "buildingType": {"type": "string", "enum": BUILDING_TYPES,
                             "description": "Building to construct (for build actions)."},
            "details": {"type": "string", "description": "Brief reasoning for the action (1 sentence)."},
        },
        "required": ["type"],
    },
}


def commander_system_prompt(use_tool: bool = True) -> str:
    """Commander prompt, asking for either a tool call or a bare JSON object"""
    if use_tool:
        return COMMANDER_SYSTEM_PROMPT + DIRECTIVE_TOOL_INSTRUCTION
    return COMMANDER_SYSTEM_PROMPT + "\n" + DIRECTIVE_JSON_INSTRUCTIONS


def unit_system_prompt(unit_type: str, use_tool: bool = True) -> str:
    """System prompt for a unit, falling back to the soldier personality"""
    personality = UNIT_PERSONALITIES.get(unit_type, UNIT_PERSONALITIES["soldier"])
    if use_tool:
        return UNIT_SYSTEM_PROMPT_PREFIX + personality + ACTION_TOOL_INSTRUCTION
    return UNIT_SYSTEM_PROMPT_PREFIX + personality + "\n" + ACTION_JSON_INSTRUCTIONS
