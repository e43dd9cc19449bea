"""
Locale Rule Tables

Declarative data for the normalizer, classifier and extractor. Nothing in
this module evaluates rules; the matchers compile and apply them at start-up.

Tables:
    LOCALE_RULES:    locale → LocaleRules (intents in tie-break order, entity
                     rules, canonical values, dialect map, messages)
    QUANTITY_WORDS:  number word (all locales, incl. dialect) → int
    MODIFIER_CODES:  modifier surface form → price adjustment code
    SPELLING_FIXES:  typo → correction (all locales)

Version: 1.0.0
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class IntentRule:
    """Trigger patterns (regex sources) that yield `confidence` on a match."""
    intent: str
    category: str
    patterns: tuple[str, ...]
    confidence: float


@dataclass(frozen=True)
class EntityRule:
    """Surface values of one entity category, matched on word boundaries."""
    type: str
    category: str
    values: tuple[str, ...]
    confidence: float = 0.9


@dataclass(frozen=True)
class LocaleRules:
    locale: str
    intents: tuple[IntentRule, ...]
    entities: tuple[EntityRule, ...]
    canonical: dict[str, str] = field(default_factory=dict, hash=False)
    dialect: dict[str, str] = field(default_factory=dict, hash=False)
    messages: dict[str, str] = field(default_factory=dict, hash=False)


# =============================================================================
# INTENTS
# =============================================================================

# Declaration order of the base intents
INTENT_ORDER = ("order", "remove", "inquiry", "navigation", "checkout", "control")

BASE_CONFIDENCE = {
    "order": 0.8,
    "remove": 0.85,
    "inquiry": 0.75,
    "navigation": 0.8,
    "checkout": 0.9,
    "control": 0.95,
}

INTENT_CATEGORY = {
    "order": "ORDER",
    "remove": "REMOVE",
    "inquiry": "INQUIRY",
    "navigation": "NAVIGATION",
    "checkout": "CHECKOUT",
    "control": "CONTROL",
}

_INTENT_PATTERNS: dict[str, dict[str, tuple[str, ...]]] = {
    "de-CH": {
        "order": (
            r"ich (möchte|hätte gern|will|würde gern)",
            r"bestell(en)?",
            r"(kauf|nimm|hätt gern)",
            r"gib mir",
            r"ich nehme",
        ),
        "remove": (
            r"(entfern|lösch|nimm weg)",
            r"nicht mehr",
            r"cancel",
        ),
        "inquiry": (
            r"(was kostet|preis von|wie viel)",
            r"(info|details|beschreibung)",
            r"(allergen|inhaltsstoff)",
            r"was ist",
        ),
        "navigation": (
            r"(zeig|gah zu|öffne)",
            r"(zurück|weiter)",
            r"(menu|menü|speisekarte)",
            r"(warenkorb|cart)",
        ),
        "checkout": (
            r"(bezahl|zahl|kauf)",
            r"(bestätig|abschliess)",
            r"checkout",
        ),
        "control": (
            r"(stopp|halt|abbrech)",
            r"(hilf|help)",
            r"(wiederhol|nochmal)",
            r"(lut|volume)",
        ),
    },
    "de-DE": {
        "order": (
            r"ich (möchte|hätte gerne|will|würde gerne)",
            r"bestell(en)?",
            r"kaufen",
            r"ich nehme",
        ),
        "remove": (
            r"(entfernen|löschen|wegnehmen)",
            r"stornieren",
        ),
        "inquiry": (
            r"(was kostet|preis|wie teuer)",
            r"(information|details)",
            r"allergene",
        ),
        "navigation": (
            r"(zeige|gehe zu|öffne)",
            r"(zurück|weiter|vor)",
            r"(menü|speisekarte)",
        ),
        "checkout": (
            r"(bezahlen|zahlen)",
            r"(bestätigen|abschließen)",
        ),
        "control": (
            r"(stopp|halt|abbrechen)",
            r"hilfe",
            r"(wiederholen|nochmal)",
            r"(lauter|leiser)",
        ),
    },
    "fr-CH": {
        "order": (
            r"je (veux|voudrais|prends)",
            r"commander",
            r"acheter",
        ),
        "remove": (
            r"(enlever|supprimer|retirer)",
            r"annuler",
        ),
        "inquiry": (
            r"(prix|coût|combien)",
            r"(info|détails)",
            r"allergènes",
        ),
        "navigation": (
            r"(montrer|aller à|ouvrir)",
            r"(retour|suivant)",
            r"menu",
        ),
        "checkout": (
            r"(payer|régler)",
            r"(confirmer|finaliser)",
        ),
        "control": (
            r"(stop|arrêt|annuler)",
            r"aide",
            r"répéter",
        ),
    },
    "it-CH": {
        "order": (
            r"voglio",
            r"vorrei",
            r"ordinare",
            r"comprare",
        ),
        "remove": (
            r"(rimuovere|cancellare)",
            r"togliere",
        ),
        "inquiry": (
            r"(prezzo|costo|quanto)",
            r"(info|dettagli)",
            r"allergeni",
        ),
        "navigation": (
            r"(mostra|vai a|apri)",
            r"(indietro|avanti)",
            r"menu",
        ),
        "checkout": (
            r"(pagare|saldare)",
            r"(confermare|finalizzare)",
        ),
        "control": (
            r"(stop|ferma|annulla)",
            r"aiuto",
            r"ripetere",
        ),
    },
    "en-US": {
        "order": (
            r"i (want|would like|need)",
            r"order",
            r"buy",
            r"get me",
        ),
        "remove": (
            r"(remove|delete|cancel)",
            r"take away",
        ),
        "inquiry": (
            r"(price|cost|how much)",
            r"(info|details|description)",
            r"(allergen|ingredient)",
        ),
        "navigation": (
            r"(show|go to|open)",
            r"(back|forward|next)",
            r"menu",
            r"(cart|basket)",
        ),
        "checkout": (
            r"(pay|checkout|purchase)",
            r"(confirm|finalize)",
        ),
        "control": (
            r"(stop|halt|cancel)",
            r"help",
            r"(repeat|again)",
            r"(louder|quieter)",
        ),
    },
}


def _intent_rules(locale: str) -> tuple[IntentRule, ...]:
    patterns = _INTENT_PATTERNS[locale]
    return tuple(
        IntentRule(
            intent=name,
            category=INTENT_CATEGORY[name],
            patterns=patterns[name],
            confidence=BASE_CONFIDENCE[name],
        )
        for name in INTENT_ORDER
        if name in patterns
    )


# Entity types each intent may carry
INTENT_ENTITY_TYPES: dict[str, tuple[str, ...]] = {
    "order": ("product", "quantity", "modifier"),
    "remove": ("product", "quantity"),
    "inquiry": ("product", "inquiry_type"),
    "navigation": ("target",),
    "checkout": ("payment_method",),
    "control": ("control_type",),
}

# Intents whose overall confidence drops when no entity was found
ENTITY_REQUIRED_INTENTS = frozenset({"order", "remove", "inquiry"})


# =============================================================================
# CONTEXT WEIGHTS
# =============================================================================

PAGE_WEIGHT = 0.3
CART_WEIGHT = 0.2
TIME_WEIGHT = 0.1

PAGE_INTENT_BOOSTS: dict[str, dict[str, float]] = {
    "/menu": {"order": 0.2, "inquiry": 0.1},
    "/cart": {"checkout": 0.3, "remove": 0.2},
    "/checkout": {"checkout": 0.4},
    "/profile": {"navigation": 0.1},
}

CART_INTENT_BOOSTS: dict[str, float] = {
    "checkout": 0.3,
    "remove": 0.2,
    "order": -0.1,
}

# Period boundaries: morning < 11, lunch < 14, evening > 17, else afternoon
TIME_INTENT_BOOSTS: dict[str, dict[str, float]] = {
    "morning": {"order": 0.1},
    "lunch": {"order": 0.2, "checkout": 0.1},
    "afternoon": {"inquiry": 0.1},
    "evening": {"order": 0.15, "checkout": 0.1},
}


# =============================================================================
# ENTITIES
# =============================================================================

_QUANTITY_WORDS_DE = {
    "ein": "1", "eins": "1", "eine": "1", "einen": "1", "eis": "1",
    "zwei": "2", "zwöi": "2",
    "drei": "3", "drü": "3",
    "vier": "4",
    "fünf": "5", "föif": "5", "füf": "5",
    "sechs": "6", "sächs": "6",
    "sieben": "7", "sibä": "7",
    "acht": "8",
    "neun": "9", "nün": "9",
    "zehn": "10", "zäh": "10",
}

_QUANTITY_WORDS_FR = {
    "un": "1", "une": "1", "deux": "2", "trois": "3", "quatre": "4",
    "cinq": "5", "six": "6", "sept": "7", "huit": "8", "neuf": "9", "dix": "10",
}

_QUANTITY_WORDS_IT = {
    "uno": "1", "una": "1", "due": "2", "tre": "3", "quattro": "4",
    "cinque": "5", "sei": "6", "sette": "7", "otto": "8", "nove": "9", "dieci": "10",
}

_QUANTITY_WORDS_EN = {
    "one": "1", "a": "1", "an": "1", "two": "2", "three": "3", "four": "4",
    "five": "5", "six": "6", "seven": "7", "eight": "8", "nine": "9", "ten": "10",
}

# Word table used by the dispatcher when parsing quantities
QUANTITY_WORDS: dict[str, int] = {
    word: int(value)
    for table in (_QUANTITY_WORDS_DE, _QUANTITY_WORDS_FR, _QUANTITY_WORDS_IT, _QUANTITY_WORDS_EN)
    for word, value in table.items()
    if len(word) > 1
}

_PRODUCTS_DE = (
    EntityRule("product", "pizza", ("pizza", "margherita", "quattro stagioni", "diavola")),
    EntityRule("product", "burger", ("burger", "cheeseburger", "hamburger", "big mac")),
    EntityRule("product", "sandwich", ("sandwich", "panini", "club sandwich")),
    EntityRule("product", "salat", ("salat", "caesar salad", "grüner salat")),
    EntityRule("product", "getränk", ("getränk", "cola", "bier", "wasser", "kaffee", "tee")),
    EntityRule("product", "dessert", ("dessert", "glacé", "kuchen", "tiramisu")),
    EntityRule(
        "product", "schweizer",
        ("rösti", "fondue", "raclette", "cervelat", "bratwurst", "älplermagronen",
         "zürcher geschnetzeltes", "birchermüesli", "spätzli"),
    ),
)

_MODIFIERS_DE = (
    EntityRule("modifier", "size", ("klein", "gross", "mittel", "xl", "large", "small")),
    EntityRule("modifier", "preparation", ("heiss", "kalt", "warm", "extra scharf", "mild")),
    EntityRule("modifier", "extras", ("extra käse", "ohne zwiebel", "mit sauce", "ohne sauce")),
)

_PAYMENT_METHODS = EntityRule(
    "payment_method", "methods",
    ("twint", "kreditkarte", "bargeld", "paypal", "apple pay", "google pay",
     "postcard", "credit card", "cash", "carte de crédit", "carta di credito"),
)

_ENTITIES_DE = _PRODUCTS_DE + _MODIFIERS_DE + (
    EntityRule("quantity", "numbers", tuple(_QUANTITY_WORDS_DE)),
    _PAYMENT_METHODS,
    EntityRule(
        "target", "pages",
        ("menu", "menü", "speisekarte", "warenkorb", "cart", "kasse", "checkout",
         "profil", "bestellungen", "einstellungen"),
    ),
    EntityRule("inquiry_type", "price", ("preis", "kostet", "kosten", "wie viel", "wie teuer")),
    EntityRule("inquiry_type", "allergens", ("allergene", "allergen", "inhaltsstoffe")),
    EntityRule("inquiry_type", "info", ("info", "information", "details", "beschreibung")),
    EntityRule("control_type", "stop", ("stopp", "halt", "abbrechen", "stop")),
    EntityRule("control_type", "help", ("hilfe", "hilf", "help")),
    EntityRule("control_type", "repeat", ("wiederholen", "wiederhole", "nochmal")),
    EntityRule("control_type", "volume", ("lauter", "leiser", "lut")),
)

_ENTITIES_FR = (
    EntityRule("product", "pizza", ("pizza", "margherita")),
    EntityRule("product", "burger", ("burger", "hamburger")),
    EntityRule("product", "sandwich", ("sandwich", "croque monsieur")),
    EntityRule("product", "salade", ("salade",)),
    EntityRule("product", "boisson", ("boisson", "cola", "bière", "eau", "café", "thé")),
    EntityRule("product", "dessert", ("dessert", "glace", "gâteau", "tiramisu")),
    EntityRule("product", "suisse", ("rösti", "fondue", "raclette", "cervelas")),
    EntityRule("quantity", "numbers", tuple(_QUANTITY_WORDS_FR)),
    EntityRule("modifier", "size", ("petit", "grand", "moyen")),
    EntityRule("modifier", "extras", ("extra fromage", "sans oignon", "avec sauce")),
    _PAYMENT_METHODS,
    EntityRule("target", "pages", ("menu", "panier", "caisse", "profil", "commandes", "paramètres")),
    EntityRule("inquiry_type", "price", ("prix", "combien", "coût")),
    EntityRule("inquiry_type", "allergens", ("allergènes",)),
    EntityRule("inquiry_type", "info", ("info", "détails")),
    EntityRule("control_type", "stop", ("stop", "arrêt", "annuler")),
    EntityRule("control_type", "help", ("aide",)),
    EntityRule("control_type", "repeat", ("répéter",)),
)

_ENTITIES_IT = (
    EntityRule("product", "pizza", ("pizza", "margherita", "diavola")),
    EntityRule("product", "burger", ("burger", "hamburger")),
    EntityRule("product", "panino", ("panino", "panini")),
    EntityRule("product", "insalata", ("insalata",)),
    EntityRule("product", "bevanda", ("bevanda", "cola", "birra", "acqua", "caffè", "tè")),
    EntityRule("product", "dolce", ("dolce", "gelato", "torta", "tiramisu")),
    EntityRule("quantity", "numbers", tuple(_QUANTITY_WORDS_IT)),
    EntityRule("modifier", "size", ("piccolo", "grande", "medio")),
    EntityRule("modifier", "extras", ("extra formaggio", "senza cipolla", "con salsa")),
    _PAYMENT_METHODS,
    EntityRule("target", "pages", ("menu", "carrello", "cassa", "profilo", "ordini", "impostazioni")),
    EntityRule("inquiry_type", "price", ("prezzo", "quanto", "costo")),
    EntityRule("inquiry_type", "allergens", ("allergeni",)),
    EntityRule("inquiry_type", "info", ("info", "dettagli")),
    EntityRule("control_type", "stop", ("stop", "ferma", "annulla")),
    EntityRule("control_type", "help", ("aiuto",)),
    EntityRule("control_type", "repeat", ("ripetere",)),
)

_ENTITIES_EN = (
    EntityRule("product", "pizza", ("pizza", "margherita", "pepperoni")),
    EntityRule("product", "burger", ("burger", "cheeseburger", "hamburger")),
    EntityRule("product", "sandwich", ("sandwich", "club sandwich")),
    EntityRule("product", "salad", ("salad", "caesar salad")),
    EntityRule("product", "drink", ("drink", "cola", "beer", "water", "coffee", "tea")),
    EntityRule("product", "dessert", ("dessert", "ice cream", "cake", "tiramisu")),
    EntityRule("product", "swiss", ("rösti", "fondue", "raclette")),
    EntityRule("quantity", "numbers", tuple(w for w in _QUANTITY_WORDS_EN if len(w) > 2)),
    EntityRule("modifier", "size", ("small", "medium", "large", "xl")),
    EntityRule("modifier", "preparation", ("hot", "cold", "extra spicy", "mild")),
    EntityRule("modifier", "extras", ("extra cheese", "extra sauce", "no onion", "with sauce")),
    _PAYMENT_METHODS,
    EntityRule("target", "pages", ("menu", "cart", "basket", "checkout", "profile", "orders", "settings")),
    EntityRule("inquiry_type", "price", ("price", "cost", "how much")),
    EntityRule("inquiry_type", "allergens", ("allergens", "allergen", "ingredients")),
    EntityRule("inquiry_type", "info", ("info", "details", "description")),
    EntityRule("control_type", "stop", ("stop", "halt", "cancel")),
    EntityRule("control_type", "help", ("help",)),
    EntityRule("control_type", "repeat", ("repeat", "again")),
    EntityRule("control_type", "volume", ("louder", "quieter")),
)


# =============================================================================
# CANONICAL VALUES
# =============================================================================

_TARGETS = {
    "menü": "menu", "speisekarte": "menu",
    "warenkorb": "cart", "basket": "cart", "panier": "cart", "carrello": "cart",
    "kasse": "checkout", "caisse": "checkout", "cassa": "checkout",
    "profil": "profile", "profilo": "profile",
    "bestellungen": "orders", "commandes": "orders", "ordini": "orders",
    "einstellungen": "settings", "paramètres": "settings", "impostazioni": "settings",
}

_INQUIRY_TYPES = {
    "preis": "price", "kostet": "price", "kosten": "price", "wie viel": "price",
    "wie teuer": "price", "prix": "price", "combien": "price", "coût": "price",
    "prezzo": "price", "quanto": "price", "costo": "price", "cost": "price",
    "how much": "price",
    "allergene": "allergens", "allergen": "allergens", "inhaltsstoffe": "allergens",
    "allergènes": "allergens", "allergeni": "allergens", "ingredients": "allergens",
    "information": "info", "details": "info", "beschreibung": "info",
    "détails": "info", "dettagli": "info", "description": "info",
}

_CONTROL_TYPES = {
    "stopp": "stop", "halt": "stop", "abbrechen": "stop", "arrêt": "stop",
    "annuler": "stop", "ferma": "stop", "annulla": "stop", "cancel": "stop",
    "hilfe": "help", "hilf": "help", "aide": "help", "aiuto": "help",
    "wiederholen": "repeat", "wiederhole": "repeat", "nochmal": "repeat",
    "répéter": "repeat", "ripetere": "repeat", "again": "repeat",
    "lauter": "volume", "leiser": "volume", "lut": "volume",
    "louder": "volume", "quieter": "volume",
}

_PAYMENT_CANONICAL = {
    "kreditkarte": "credit_card", "credit card": "credit_card",
    "carte de crédit": "credit_card", "carta di credito": "credit_card",
    "bargeld": "cash",
    "apple pay": "apple_pay", "google pay": "google_pay",
}


def _canonical(quantity_words: dict[str, str]) -> dict[str, str]:
    table: dict[str, str] = {}
    for mapping in (_TARGETS, _INQUIRY_TYPES, _CONTROL_TYPES, _PAYMENT_CANONICAL, quantity_words):
        table.update(mapping)
    return table


# Modifier surface form → price adjustment code
MODIFIER_CODES: dict[str, str] = {
    "extra käse": "extra_cheese", "extra cheese": "extra_cheese",
    "extra fromage": "extra_cheese", "extra formaggio": "extra_cheese",
    "mit sauce": "extra_sauce", "extra sauce": "extra_sauce", "with sauce": "extra_sauce",
    "avec sauce": "extra_sauce", "con salsa": "extra_sauce",
    "gross": "large_size", "large": "large_size", "xl": "large_size",
    "grand": "large_size", "grande": "large_size",
    "klein": "small_size", "small": "small_size", "petit": "small_size", "piccolo": "small_size",
    "extra scharf": "extra_spicy", "extra spicy": "extra_spicy",
}

MODIFIER_PRICES: dict[str, float] = {
    "extra_cheese": 2.00,
    "extra_sauce": 1.00,
    "large_size": 3.00,
    "small_size": -2.00,
    "extra_spicy": 0.50,
}


# =============================================================================
# NORMALIZATION
# =============================================================================

# Swiss German words replaced by canonical tokens before matching
_SWISS_DIALECT = {
    # food items
    "röschti": "rösti",
    "rööschti": "rösti",
    "servelat": "cervelat",
    "chäs": "käse",
    "glace": "glacé",
    # quantities
    "eis": "1",
    "zwöi": "2",
    "drü": "3",
    "föif": "5",
    "füf": "5",
    "sächs": "6",
    "sibä": "7",
    "nün": "9",
    "zäh": "10",
    # modifiers
    "chli": "klein",
    "ohni": "ohne",
    "chalt": "kalt",
}

SPELLING_FIXES: dict[str, str] = {
    "piza": "pizza",
    "burguer": "burger",
    "cofee": "kaffee",
    "cafe": "kaffee",
    "bred": "brot",
    "chees": "käse",
}


# =============================================================================
# MESSAGES
# =============================================================================

_MESSAGES_DE = {
    "order_product": "Welches Produkt möchten Sie bestellen?",
    "inquiry_product": "Zu welchem Produkt möchten Sie Informationen?",
    "unknown": 'Ich habe Sie nicht verstanden. Versuchen Sie: "Ich möchte eine Pizza bestellen"',
    "low_confidence": "Meinten Sie eine dieser Aktionen?",
}

_MESSAGES = {
    "de-CH": _MESSAGES_DE,
    "de-DE": _MESSAGES_DE,
    "fr-CH": {
        "order_product": "Quel produit souhaitez-vous commander?",
        "inquiry_product": "Sur quel produit souhaitez-vous des informations?",
        "unknown": 'Je ne vous ai pas compris. Essayez: "Je voudrais une pizza"',
        "low_confidence": "Vouliez-vous dire une de ces actions?",
    },
    "it-CH": {
        "order_product": "Quale prodotto desidera ordinare?",
        "inquiry_product": "Su quale prodotto desidera informazioni?",
        "unknown": 'Non ho capito. Provi: "Vorrei una pizza"',
        "low_confidence": "Intendeva una di queste azioni?",
    },
    "en-US": {
        "order_product": "Which product would you like to order?",
        "inquiry_product": "Which product would you like information about?",
        "unknown": 'Sorry, I did not understand. Try: "I would like a pizza"',
        "low_confidence": "Did you mean one of these actions?",
    },
}


# =============================================================================
# REGISTRY
# =============================================================================

LOCALE_RULES: dict[str, LocaleRules] = {
    "de-CH": LocaleRules(
        locale="de-CH",
        intents=_intent_rules("de-CH"),
        entities=_ENTITIES_DE,
        canonical=_canonical(_QUANTITY_WORDS_DE),
        dialect=_SWISS_DIALECT,
        messages=_MESSAGES["de-CH"],
    ),
    "de-DE": LocaleRules(
        locale="de-DE",
        intents=_intent_rules("de-DE"),
        entities=_ENTITIES_DE,
        canonical=_canonical(_QUANTITY_WORDS_DE),
        messages=_MESSAGES["de-DE"],
    ),
    "fr-CH": LocaleRules(
        locale="fr-CH",
        intents=_intent_rules("fr-CH"),
        entities=_ENTITIES_FR,
        canonical=_canonical(_QUANTITY_WORDS_FR),
        messages=_MESSAGES["fr-CH"],
    ),
    "it-CH": LocaleRules(
        locale="it-CH",
        intents=_intent_rules("it-CH"),
        entities=_ENTITIES_IT,
        canonical=_canonical(_QUANTITY_WORDS_IT),
        messages=_MESSAGES["it-CH"],
    ),
    "en-US": LocaleRules(
        locale="en-US",
        intents=_intent_rules("en-US"),
        entities=_ENTITIES_EN,
        canonical=_canonical(_QUANTITY_WORDS_EN),
        messages=_MESSAGES["en-US"],
    ),
}
