# app/services/utils.py
# 재료 문자열 정규화 유틸
# - LLM이 뽑은 "1 1/2 cups chopped onions" → 수량 1.5 / 단위 cup / 이름 "onions"
# - USDA FDC 검색용 쿼리 후보(동의어 우선) 생성
# - 매핑에 없으면 정리된 이름 그대로 검색 → 모든 재료 검색 OK

from __future__ import annotations

import re
import unicodedata
from typing import Any, Dict, List, Optional

# 조리법 (이름에서 제거, 조리 상태 판단은 원문으로)
COOKING_METHODS = [
    "baked", "boiled", "braised", "broiled", "charred", "chopped", "cooked",
    "crispy", "crushed", "cubed", "diced", "dried", "fried", "frozen",
    "grated", "grilled", "ground", "julienned", "marinated", "mashed",
    "melted", "minced", "packed", "peeled", "poached", "raw", "roasted",
    "sauteed", "sautéed", "scrambled", "shredded", "sifted", "sliced",
    "smoked", "softened", "steamed", "stewed", "thawed", "toasted",
    "trimmed", "warmed", "whisked", "zested",
]

# 영양에 거의 영향 없는 수식어
STRIP_DESCRIPTORS = [
    "room temperature", "loosely packed", "store-bought", "to taste", "as needed",
    "for serving", "for garnish",
    "fresh", "freshly", "organic", "natural", "pure", "real", "authentic",
    "homemade", "storebought", "premium", "quality", "good", "best", "fine",
    "extra", "large", "medium", "small", "thick", "thin", "cold", "warm", "hot",
    "divided", "optional", "approximately", "about", "roughly", "heaping",
    "scant", "generous", "level",
]

_PAREN_NOISE = re.compile(
    r"\s*\([^)]*(optional|divided|or more|to taste|for serving|garnish|such as|brand)[^)]*\)", re.I
)
_BRAND = re.compile(r"(\bbrand\b|®|™)", re.I)

# 범위 → 대분수 → 분수 → 소수 → 정수 순서로 시도
_QTY = r"\d+(?:\.\d+)?"
QUANTITY_PATTERNS = [
    re.compile(rf"^({_QTY}\s*(?:-|–|to)\s*{_QTY})\s*"),
    re.compile(r"^(\d+\s+\d+/\d+)\s*"),
    re.compile(r"^(\d+/\d+)\s*"),
    re.compile(r"^(\d+\.\d+)\s*"),
    re.compile(r"^(\d+)\s*"),
]

_UNICODE_FRACTIONS = {"½": " 1/2", "¼": " 1/4", "¾": " 3/4", "⅓": " 1/3", "⅔": " 2/3", "⅛": " 1/8"}

UNIT_MAP: Dict[str, str] = {
    # 부피
    "cup": "cup", "cups": "cup", "c": "cup",
    "tablespoon": "tbsp", "tablespoons": "tbsp", "tbsp": "tbsp", "tbsps": "tbsp",
    "tbs": "tbsp", "tb": "tbsp", "t": "tbsp", "tbl": "tbsp",
    "teaspoon": "tsp", "teaspoons": "tsp", "tsp": "tsp", "tsps": "tsp",
    "fluid ounce": "fl oz", "fluid ounces": "fl oz", "fl oz": "fl oz", "floz": "fl oz",
    "milliliter": "ml", "milliliters": "ml", "ml": "ml", "mls": "ml",
    "liter": "l", "liters": "l", "l": "l", "litre": "l", "litres": "l",
    "pint": "pint", "pints": "pint", "pt": "pint",
    "quart": "quart", "quarts": "quart", "qt": "quart",
    "gallon": "gallon", "gallons": "gallon", "gal": "gallon",
    # 무게
    "gram": "g", "grams": "g", "g": "g", "gm": "g", "gms": "g",
    "kilogram": "kg", "kilograms": "kg", "kg": "kg", "kgs": "kg",
    "milligram": "mg", "milligrams": "mg", "mg": "mg",
    "ounce": "oz", "ounces": "oz", "oz": "oz", "ozs": "oz",
    "pound": "lb", "pounds": "lb", "lb": "lb", "lbs": "lb",
    # 개수
    "piece": "piece", "pieces": "piece", "pc": "piece", "pcs": "piece",
    "slice": "slice", "slices": "slice",
    "clove": "clove", "cloves": "clove",
    "head": "head", "heads": "head",
    "bunch": "bunch", "bunches": "bunch",
    "sprig": "sprig", "sprigs": "sprig",
    "stalk": "stalk", "stalks": "stalk",
    "stick": "stick", "sticks": "stick",
    "can": "can", "cans": "can",
    "jar": "jar", "jars": "jar",
    "package": "package", "packages": "package", "pkg": "package", "pkgs": "package",
    "container": "container", "containers": "container",
    "whole": "whole", "each": "each", "ea": "each",
}

# 재료명 → USDA 검색 대표 문자열 (필요시 계속 확장)
INGREDIENT_ALIASES: Dict[str, str] = {
    # 단백질
    "chicken breast": "chicken broiler breast meat raw",
    "chicken breasts": "chicken broiler breast meat raw",
    "chicken thigh": "chicken broiler thigh meat raw",
    "chicken thighs": "chicken broiler thigh meat raw",
    "beef": "beef ground 85% lean raw",
    "turkey": "turkey ground raw",
    "salmon fillet": "salmon atlantic raw",
    "salmon": "salmon atlantic raw",
    "shrimp": "shrimp raw",
    "bacon": "pork bacon raw",
    "sausage": "pork sausage raw",
    "tofu": "tofu firm raw",
    "egg": "egg whole raw",
    "eggs": "egg whole raw",
    "egg whites": "egg white raw",
    # 유제품
    "butter": "butter salted",
    "unsalted butter": "butter unsalted",
    "milk": "milk whole",
    "whole milk": "milk whole",
    "skim milk": "milk nonfat",
    "2% milk": "milk reduced fat 2%",
    "heavy cream": "cream heavy whipping",
    "cream cheese": "cream cheese",
    "sour cream": "sour cream",
    "greek yogurt": "yogurt greek plain nonfat",
    "yogurt": "yogurt plain whole milk",
    "cheddar": "cheese cheddar",
    "cheddar cheese": "cheese cheddar",
    "parmesan": "cheese parmesan hard",
    "parmesan cheese": "cheese parmesan hard",
    "mozzarella": "cheese mozzarella whole milk",
    "mozzarella cheese": "cheese mozzarella whole milk",
    # 오일
    "olive oil": "oil olive",
    "extra virgin olive oil": "oil olive extra virgin",
    "virgin olive oil": "oil olive extra virgin",
    "vegetable oil": "oil vegetable",
    "canola oil": "oil canola",
    "coconut oil": "oil coconut",
    "sesame oil": "oil sesame",
    "avocado oil": "oil avocado",
    # 곡물/전분
    "white rice": "rice white long grain raw",
    "rice": "rice white long grain raw",
    "brown rice": "rice brown long grain raw",
    "pasta": "pasta dry",
    "spaghetti": "spaghetti dry",
    "penne": "pasta dry",
    "bread": "bread white",
    "white bread": "bread white",
    "whole wheat bread": "bread whole wheat",
    "flour": "flour all purpose",
    "all purpose flour": "flour all purpose",
    "all-purpose flour": "flour all purpose",
    "bread flour": "flour bread",
    "whole wheat flour": "flour whole wheat",
    "oats": "oats regular",
    "rolled oats": "oats regular",
    "quinoa": "quinoa uncooked",
    # 채소
    "onion": "onions raw",
    "onions": "onions raw",
    "garlic": "garlic raw",
    "garlic cloves": "garlic raw",
    "tomato": "tomatoes red ripe raw",
    "tomatoes": "tomatoes red ripe raw",
    "cherry tomatoes": "tomatoes grape raw",
    "potato": "potatoes raw",
    "potatoes": "potatoes raw",
    "sweet potato": "sweet potato raw",
    "sweet potatoes": "sweet potato raw",
    "carrot": "carrots raw",
    "carrots": "carrots raw",
    "celery": "celery raw",
    "bell pepper": "peppers sweet raw",
    "bell peppers": "peppers sweet raw",
    "red bell pepper": "peppers sweet red raw",
    "broccoli": "broccoli raw",
    "spinach": "spinach raw",
    "kale": "kale raw",
    "lettuce": "lettuce iceberg raw",
    "romaine": "lettuce romaine raw",
    "mushrooms": "mushrooms white raw",
    "mushroom": "mushrooms white raw",
    "zucchini": "squash zucchini raw",
    "cucumber": "cucumber with peel raw",
    "avocado": "avocados raw",
    "corn": "corn sweet yellow raw",
    "green beans": "beans green raw",
    "asparagus": "asparagus raw",
    "cauliflower": "cauliflower raw",
    "cabbage": "cabbage raw",
    # 과일
    "apple": "apples raw with skin",
    "banana": "bananas raw",
    "bananas": "bananas raw",
    "lemon": "lemons raw",
    "lemon juice": "lemon juice raw",
    "lime": "limes raw",
    "lime juice": "lime juice raw",
    "strawberries": "strawberries raw",
    "blueberries": "blueberries raw",
    # 콩/견과
    "black beans": "beans black canned drained",
    "kidney beans": "beans kidney canned drained",
    "chickpeas": "chickpeas canned drained",
    "lentils": "lentils raw",
    "peanut butter": "peanut butter smooth",
    "almond butter": "almond butter",
    "almonds": "nuts almonds",
    "walnuts": "nuts walnuts",
    "cashews": "nuts cashews raw",
    "peanuts": "peanuts raw",
    # 당류
    "sugar": "sugar granulated",
    "white sugar": "sugar granulated",
    "brown sugar": "sugar brown",
    "honey": "honey",
    "maple syrup": "syrups maple",
    "powdered sugar": "sugar powdered",
    # 소스
    "soy sauce": "soy sauce",
    "worcestershire sauce": "worcestershire sauce",
    "ketchup": "ketchup",
    "mustard": "mustard prepared yellow",
    "mayonnaise": "mayonnaise",
    "mayo": "mayonnaise",
    "hot sauce": "sauce hot chile pepper",
    "sriracha": "sauce hot chile pepper",
    "vinegar": "vinegar distilled",
    "balsamic vinegar": "vinegar balsamic",
    "apple cider vinegar": "vinegar cider",
    "rice vinegar": "vinegar rice",
    # 양념
    "salt": "salt table iodized",
    "kosher salt": "salt table",
    "sea salt": "salt table",
    "pepper": "spices pepper black",
    "black pepper": "spices pepper black",
    "paprika": "spices paprika",
    "cumin": "spices cumin ground",
    "oregano": "spices oregano dried",
    "basil": "basil fresh",
    "thyme": "thyme fresh",
    "rosemary": "rosemary fresh",
    "cinnamon": "spices cinnamon ground",
    "ginger": "ginger root raw",
    "cayenne": "spices pepper red cayenne",
    "chili powder": "spices chili powder",
    "garlic powder": "spices garlic powder",
    "onion powder": "spices onion powder",
    # 베이킹
    "baking powder": "leavening agents baking powder",
    "baking soda": "leavening agents baking soda",
    "vanilla extract": "vanilla extract",
    "vanilla": "vanilla extract",
    "cocoa powder": "cocoa dry powder unsweetened",
    "chocolate chips": "chocolate chips semisweet",
    "yeast": "yeast bakers active dry",
}

_COOKED_WORDS = [
    "cooked", "boiled", "steamed", "fried", "baked", "roasted",
    "grilled", "sauteed", "sautéed", "poached", "braised",
]
_RAW_WORDS = ["raw", "uncooked", "fresh"]


def _nfkc(s: str) -> str:
    return unicodedata.normalize("NFKC", s or "")


def _word_re(words: List[str]) -> re.Pattern:
    return re.compile(r"\b(" + "|".join(re.escape(w) for w in words) + r")\b", re.I)


_METHODS_RE = _word_re(COOKING_METHODS)
_DESCRIPTORS_RE = _word_re(STRIP_DESCRIPTORS)


def parse_quantity_value(text: Optional[str]) -> Optional[float]:
    # "1 1/2" → 1.5, "1/4" → 0.25, "2-3" → 2.5 (범위는 평균)
    if not text:
        return None
    s = text.strip()

    rng = re.match(rf"^({_QTY})\s*(?:-|–|to)\s*({_QTY})$", s)
    if rng:
        return (float(rng.group(1)) + float(rng.group(2))) / 2

    mixed = re.match(r"^(\d+)\s+(\d+)/(\d+)$", s)
    if mixed:
        den = int(mixed.group(3))
        return int(mixed.group(1)) + int(mixed.group(2)) / den if den else None

    frac = re.match(r"^(\d+)/(\d+)$", s)
    if frac:
        den = int(frac.group(2))
        return int(frac.group(1)) / den if den else None

    m = re.match(rf"^{_QTY}", s)
    return float(m.group(0)) if m else None


def clean_ingredient_name(name: str) -> str:
    s = (name or "").lower()
    s = _BRAND.sub("", s)
    s = _PAREN_NOISE.sub("", s)
    # 남은 괄호 내용 (예: "(454g)", "(or yellow onion)")
    s = re.sub(r"\([^)]*\)", " ", s)
    s = _METHODS_RE.sub("", s)
    s = _DESCRIPTORS_RE.sub("", s)
    s = re.sub(r"^of\s+", "", s.strip())
    s = re.sub(r"[,;:]", "", s)
    return re.sub(r"\s+", " ", s).strip()


def detect_cooked_state(text: str) -> str:
    lower = (text or "").lower()
    if any(w in lower for w in _COOKED_WORDS):
        return "cooked"
    if any(w in lower for w in _RAW_WORDS):
        return "raw"
    return "unknown"


def generate_search_queries(name: str) -> List[str]:
    """
    USDA 검색 후보 (최대 5개)
    1) 동의어 대표 문자열  2) 이름 그대로  3) "<이름> raw"
    4) 마지막 단어 뺀 버전  5) 첫 단어(4자 이상)
    """
    lower = (name or "").lower().strip()
    queries: List[str] = []

    def add(q: str) -> None:
        if q and q not in queries:
            queries.append(q)

    add(INGREDIENT_ALIASES.get(lower, ""))
    add(lower)
    if lower:
        add(f"{lower} raw")

    words = lower.split()
    if len(words) > 1:
        add(" ".join(words[:-1]))
        if len(words[0]) >= 4:
            add(words[0])

    return queries[:5]


def parse_ingredient(text: Any) -> Optional[Dict[str, Any]]:
    """
    재료 한 줄 → {original, quantity, unit, name, search_queries, cooked_state}
    - 문자열이 아니거나 비었으면 None
    """
    if not isinstance(text, str) or not text.strip():
        return None

    original = _nfkc(text.strip())
    # NFKC는 ½를 "1⁄2"로 바꾸므로 유니코드 분수는 정규화 전에 치환
    rest = text.strip()
    for k, v in _UNICODE_FRACTIONS.items():
        rest = rest.replace(k, v)
    rest = _nfkc(rest).replace("\u2044", "/").strip()

    quantity: Optional[float] = None
    for pat in QUANTITY_PATTERNS:
        m = pat.match(rest)
        if m:
            quantity = parse_quantity_value(m.group(1))
            rest = rest[m.end():].strip()
            break

    unit: Optional[str] = None
    # 두 단어 단위 먼저 (fl oz, fluid ounces)
    m = re.match(r"^(fl\.?\s*oz|fluid\s+ounces?)\.?\s+", rest, re.I)
    if m:
        unit = "fl oz"
        rest = rest[m.end():].strip()
    else:
        m = re.match(r"^([a-zA-Z]+)\.?(\s+|$)", rest)
        if m and m.group(1).lower() in UNIT_MAP:
            unit = UNIT_MAP[m.group(1).lower()]
            rest = rest[m.end():].strip()

    name = clean_ingredient_name(rest)
    return {
        "original": original,
        "quantity": quantity,
        "unit": unit,
        "name": name,
        "search_queries": generate_search_queries(name),
        "cooked_state": detect_cooked_state(original),
    }


def normalize_recipe_ingredients(ingredients: List[Any]) -> List[Dict[str, Any]]:
    # {name, quantity} 또는 문자열 리스트 → 파싱 결과 리스트 (원본은 original_ingredient에 보존)
    out: List[Dict[str, Any]] = []
    for ing in ingredients or []:
        if isinstance(ing, str):
            text = ing
        elif isinstance(ing, dict):
            text = f"{ing.get('quantity') or ''} {ing.get('name') or ''}".strip()
        else:
            text = f"{getattr(ing, 'quantity', '') or ''} {getattr(ing, 'name', '') or ''}".strip()

        parsed = parse_ingredient(text)
        if parsed is None:
            parsed = {
                "original": text,
                "quantity": None,
                "unit": None,
                "name": text,
                "search_queries": [text] if text else [],
                "cooked_state": "unknown",
            }
        parsed["original_ingredient"] = ing
        out.append(parsed)
    return out
