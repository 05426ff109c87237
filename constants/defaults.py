"""Seed content created by ContentService.initialize_defaults."""

DEFAULT_MODULES = [
    {
        "module_key": "qxu5031",
        "code": "QXU5031",
        "title": "Polymer Chemistry",
        "description": "Intro, MW, Step-Growth & Radical",
        "color_theme": "indigo",
        "icon_key": "bookOpen",
        "order": 1,
    },
    {
        "module_key": "qxu6033",
        "code": "QXU6033",
        "title": "Advanced Chemistry",
        "description": "CRP, Dendrimers & Self-Assembly",
        "color_theme": "pink",
        "icon_key": "beaker",
        "order": 2,
    },
]

RESERVED_MODULE_KEYS = frozenset(m["module_key"] for m in DEFAULT_MODULES)

DEFAULT_LESSONS = [
    {
        "title": "Introduction to Polymers",
        "description": "Learn the basics of polymer structure",
        "difficulty": "Beginner",
        "xp_reward": 50,
        "order": 1,
        "module_key": "qxu5031",
        "questions": [
            {
                "text": "What is a polymer?",
                "options": [
                    "A small molecule",
                    "A large molecule made of repeating units",
                    "A type of metal",
                    "A chemical element",
                ],
                "correct_index": 1,
                "explanation": "Polymers are large molecules composed of many repeating subunits called monomers.",
            },
            {
                "text": "What is a monomer?",
                "options": [
                    "The repeating unit in a polymer",
                    "A type of polymer",
                    "A chemical bond",
                    "A solvent",
                ],
                "correct_index": 0,
                "explanation": "Monomers are the small molecular building blocks that link together to form polymers.",
            },
            {
                "text": "Which of these is a natural polymer?",
                "options": ["Nylon", "Polyethylene", "Cellulose", "PVC"],
                "correct_index": 2,
                "explanation": "Cellulose is a natural polymer found in plant cell walls, while the others are synthetic.",
            },
        ],
    },
    {
        "title": "Polymerization Types",
        "description": "Master addition and condensation polymerization",
        "difficulty": "Intermediate",
        "xp_reward": 75,
        "order": 2,
        "module_key": "qxu5031",
        "questions": [
            {
                "text": "In addition polymerization, monomers join by:",
                "options": [
                    "Losing small molecules like water",
                    "Breaking double bonds without losing atoms",
                    "Dissolving in solvent",
                    "Heating to high temperatures",
                ],
                "correct_index": 1,
                "explanation": "Addition polymerization involves breaking double bonds in monomers and forming single bonds without losing any atoms.",
            },
            {
                "text": "Condensation polymerization produces:",
                "options": [
                    "Only the polymer",
                    "Polymer and small molecules like water",
                    "Only water",
                    "Carbon dioxide",
                ],
                "correct_index": 1,
                "explanation": "Condensation polymerization forms a polymer and releases small molecules (like water or HCl) as byproducts.",
            },
            {
                "text": "Which polymer is made by addition polymerization?",
                "options": ["Nylon", "Polyester", "Polystyrene", "Kevlar"],
                "correct_index": 2,
                "explanation": "Polystyrene is made by addition polymerization of styrene monomers, while nylon, polyester, and Kevlar use condensation.",
            },
        ],
    },
    {
        "title": "Polymer Properties",
        "description": "Understand thermoplastics vs thermosets",
        "difficulty": "Intermediate",
        "xp_reward": 75,
        "order": 3,
        "module_key": "qxu5031",
        "questions": [
            {
                "text": "Thermoplastics can be:",
                "options": [
                    "Melted and reshaped multiple times",
                    "Only shaped once",
                    "Never melted",
                    "Dissolved but not melted",
                ],
                "correct_index": 0,
                "explanation": "Thermoplastics soften when heated and can be reshaped multiple times, making them recyclable.",
            },
            {
                "text": "Thermosets are characterized by:",
                "options": [
                    "Linear polymer chains",
                    "Cross-linked polymer networks",
                    "Ability to melt easily",
                    "Low molecular weight",
                ],
                "correct_index": 1,
                "explanation": "Thermosets have extensively cross-linked structures that prevent melting and make them permanently rigid.",
            },
            {
                "text": "Which is an example of a thermoset?",
                "options": ["Polyethylene", "Polypropylene", "Epoxy resin", "PVC"],
                "correct_index": 2,
                "explanation": "Epoxy resin is a thermoset that forms irreversible cross-links when cured.",
            },
        ],
    },
]
