"""
Ingredient, unit and aisle normalization.

Shopping lists merge lines by normalized ingredient name, so "Onion",
"onions" and "oignon" all land on the key "oignon". Keys are French because
the household catalog is mostly French with English imports.

All tables are read-only module constants, safe to share across requests.
"""

import re
from types import MappingProxyType
from typing import Optional

# --- Data Tables ---

# English -> French ingredient names (applied to the whole cleaned name)
INGREDIENT_TRANSLATIONS = MappingProxyType({
    "olive oil": "huile d'olive",
    "oil": "huile",
    "garlic": "ail",
    "onion": "oignon",
    "onions": "oignon",
    "red onion": "oignon rouge",
    "tomato": "tomate",
    "tomatoes": "tomate",
    "cherry tomatoes": "tomates cerises",
    "tomato paste": "concentré de tomate",
    "salt": "sel",
    "pepper": "poivre",
    "black pepper": "poivre noir",
    "sugar": "sucre",
    "flour": "farine",
    "butter": "beurre",
    "egg": "oeuf",
    "eggs": "oeufs",
    "milk": "lait",
    "cream": "crème",
    "cheese": "fromage",
    "chicken": "poulet",
    "beef": "boeuf",
    "pork": "porc",
    "fish": "poisson",
    "rice": "riz",
    "pasta": "pâtes",
    "potato": "pomme de terre",
    "potatoes": "pommes de terre",
    "carrot": "carotte",
    "carrots": "carottes",
    "lemon": "citron",
    "lettuce": "laitue",
    "cucumber": "concombre",
    "avocado": "avocat",
    "bell pepper": "poivron",
    "berries": "fruits rouges",
    "parsley": "persil",
    "basil": "basilic",
    "thyme": "thym",
    "oregano": "origan",
    "ginger": "gingembre",
    "soy sauce": "sauce soja",
    "honey": "miel",
    "vinegar": "vinaigre",
    "water": "eau",
    "broth": "bouillon",
    "stock": "bouillon",
    "chicken broth": "bouillon de poulet",
    "beef broth": "bouillon de boeuf",
})

# French plural -> singular
PLURAL_NORMALIZATIONS = MappingProxyType({
    "oignons": "oignon",
    "tomates": "tomate",
    "carottes": "carotte",
    "pommes de terre": "pomme de terre",
    "oeufs": "oeuf",
    "gousses": "gousse",
    "citrons": "citron",
    "poivrons": "poivron",
    "concombres": "concombre",
    "avocats": "avocat",
})

FILLER_ADJECTIVES = ("fresh", "frais", "fraîche", "fraîches")

# Unit synonyms -> canonical token
UNIT_NORMALIZATIONS = MappingProxyType({
    "tbsp": "c. à soupe",
    "tablespoon": "c. à soupe",
    "tablespoons": "c. à soupe",
    "cuil. à soupe": "c. à soupe",
    "cuillère à soupe": "c. à soupe",
    "cuillères à soupe": "c. à soupe",
    "c. à s.": "c. à soupe",
    "tsp": "c. à café",
    "teaspoon": "c. à café",
    "teaspoons": "c. à café",
    "cuil. à café": "c. à café",
    "cuillère à café": "c. à café",
    "cuillères à café": "c. à café",
    "c. à c.": "c. à café",
    "cup": "tasse",
    "cups": "tasse",
    "tasses": "tasse",
    "clove": "gousse",
    "cloves": "gousse",
    "gousses": "gousse",
    "piece": "pièce",
    "pieces": "pièce",
    "pièces": "pièce",
    "pc": "pièce",
    "pcs": "pièce",
    "head": "pièce",
    "slice": "tranche",
    "slices": "tranche",
    "tranches": "tranche",
    "g": "g",
    "gr": "g",
    "gram": "g",
    "grams": "g",
    "gramme": "g",
    "grammes": "g",
    "kg": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
    "ml": "ml",
    "milliliter": "ml",
    "milliliters": "ml",
    "millilitre": "ml",
    "millilitres": "ml",
    "l": "l",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
})

# English aisle codes -> French display labels
AISLE_TRANSLATIONS = MappingProxyType({
    "produce": "Fruits & Légumes",
    "meat": "Boucherie",
    "dairy": "Produits laitiers",
    "bakery": "Boulangerie",
    "pasta": "Pâtes & Riz",
    "grains": "Céréales",
    "canned": "Conserves",
    "frozen": "Surgelés",
    "spices": "Épices",
    "condiments": "Condiments",
    "oils": "Huiles",
    "beverages": "Boissons",
    "snacks": "Snacks",
    "international": "Produits du monde",
    "other": "Autre",
    "asian": "Asiatique",
    "breakfast": "Petit-déjeuner",
    "deli": "Traiteur",
})

# Inventory aisle paths are "<category>:<subcategory>"
INVENTORY_AISLE_LABELS = MappingProxyType({
    "cleaning": MappingProxyType({
        "": "Produits d'entretien",
        "general": "Entretien général",
        "floors": "Sols & surfaces",
        "bathroom": "Salle de bain & WC",
        "kitchen": "Cuisine",
        "laundry": "Linge",
        "misc": "Divers",
    }),
    "toiletry": MappingProxyType({
        "": "Hygiène & soins",
        "daily": "Hygiène quotidienne",
        "body": "Soins corporels",
        "face": "Soins visage",
        "feminine": "Hygiène féminine",
        "shaving": "Rasage & coiffure",
        "baby": "Bébé/enfants",
    }),
    "pantry": MappingProxyType({
        "": "Épicerie / Réserve",
        "cereals": "Céréales & féculents",
        "legumes": "Légumineuses",
        "spices": "Condiments & épices",
        "oils": "Huiles & sauces",
        "sweets": "Sucrants & pâtisserie",
        "snacks": "Fruits secs & snacks",
        "canned": "Conserves",
        "drinks": "Boissons & petit-déj",
        "misc": "Divers essentiels",
    }),
    "freezer": MappingProxyType({
        "": "Congélateur",
        "meat": "Viandes",
        "seafood": "Poissons & fruits de mer",
        "processed": "Produits transformés",
        "bread": "Pains & pâtes",
        "dairy": "Produits laitiers",
        "vegetables": "Légumes congelés",
        "fruits": "Fruits congelés",
        "readyToCook": "Produits prêts à cuire",
        "desserts": "Pâtisserie & desserts",
        "misc": "Divers",
    }),
})

UNCATEGORIZED_AISLE = "Autre"

_EDGE_PUNCTUATION = re.compile(r"^[,.;:\s]+|[,.;:\s]+$")
_FILLERS = re.compile(r"\b(?:" + "|".join(FILLER_ADJECTIVES) + r")\b", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def _lookup(name: str) -> str:
    name = INGREDIENT_TRANSLATIONS.get(name, name)
    return PLURAL_NORMALIZATIONS.get(name, name)


def normalize_ingredient_name(name: Optional[str]) -> str:
    """
    Normalize an ingredient name to its aggregation key.

    Rules:
    - Lowercase, trim, strip stray leading/trailing punctuation
    - English -> French translation
    - Plural folding
    - Remove filler adjectives ("fresh", "frais", "fraîche")

    When removing a filler exposes a known name ("fresh basil" -> "basil"),
    the tables are applied once more so it still merges with "basilic".
    """
    if not name:
        return ""

    s = _EDGE_PUNCTUATION.sub("", name.lower().strip())
    s = _lookup(s)

    stripped = _WHITESPACE.sub(" ", _FILLERS.sub("", s)).strip()
    stripped = _EDGE_PUNCTUATION.sub("", stripped)
    if stripped != s:
        stripped = _lookup(stripped)

    return stripped


def normalize_unit(unit: Optional[str]) -> str:
    """Canonical unit token. Empty string means countable/no unit."""
    if not unit:
        return ""
    s = _WHITESPACE.sub(" ", unit.lower().strip())
    return UNIT_NORMALIZATIONS.get(s, s)


def translate_aisle(aisle: Optional[str]) -> str:
    """Display label for an aisle code. Unknown codes pass through unchanged."""
    if not aisle or not aisle.strip():
        return UNCATEGORIZED_AISLE

    code = aisle.strip()
    lower = code.lower()
    if lower in AISLE_TRANSLATIONS:
        return AISLE_TRANSLATIONS[lower]
    if lower in INVENTORY_AISLE_LABELS:
        return INVENTORY_AISLE_LABELS[lower][""]

    if ":" in code:
        main, _, sub = code.partition(":")
        labels = INVENTORY_AISLE_LABELS.get(main.lower())
        if labels is not None:
            return labels.get(sub, labels[""])
        if main.lower() in AISLE_TRANSLATIONS:
            return AISLE_TRANSLATIONS[main.lower()]

    return code


def capitalize_first(s: str) -> str:
    return s[:1].upper() + s[1:]
