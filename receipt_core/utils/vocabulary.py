"""
Word lists and patterns shared by the receipt extractors and the validator.

Everything here is matched case-insensitively against single OCR lines.
"""

import re


# Normalized key (lowercase, letters/digits/&/space only) -> display name
KNOWN_MERCHANTS = {
    'tesco': 'Tesco',
    'sainsburys': "Sainsbury's",
    'asda': 'Asda',
    'morrisons': 'Morrisons',
    'aldi': 'Aldi',
    'lidl': 'Lidl',
    'waitrose': 'Waitrose',
    'coop': 'Co-op',
    'marks spencer': 'Marks & Spencer',
    'marks & spencer': 'Marks & Spencer',
    'm&s': 'Marks & Spencer',
    'iceland': 'Iceland',
    'boots': 'Boots',
    'superdrug': 'Superdrug',
    'costa': 'Costa Coffee',
    'starbucks': 'Starbucks',
    'pret a manger': 'Pret A Manger',
    'greggs': 'Greggs',
    'mcdonalds': "McDonald's",
    'burger king': 'Burger King',
    'kfc': 'KFC',
    'subway': 'Subway',
    'nandos': "Nando's",
    'wetherspoon': 'Wetherspoon',
    'caffe nero': 'Caffe Nero',
    'pizza hut': 'Pizza Hut',
    'dominos': "Domino's",
    'primark': 'Primark',
    'argos': 'Argos',
    'currys': 'Currys',
    'ikea': 'IKEA',
    'b&q': 'B&Q',
    'wickes': 'Wickes',
    'screwfix': 'Screwfix',
    'homebase': 'Homebase',
    'john lewis': 'John Lewis',
    'h&m': 'H&M',
    'zara': 'Zara',
    'uniqlo': 'Uniqlo',
    'poundland': 'Poundland',
    'whsmith': 'WHSmith',
    'waterstones': 'Waterstones',
    'holland & barrett': 'Holland & Barrett',
    'amazon': 'Amazon',
    'walmart': 'Walmart',
    'target': 'Target',
    'costco': 'Costco',
    'whole foods': 'Whole Foods',
    'trader joes': "Trader Joe's",
    'kroger': 'Kroger',
    'safeway': 'Safeway',
    'walgreens': 'Walgreens',
    'cvs': 'CVS',
    'home depot': 'Home Depot',
    'best buy': 'Best Buy',
    'shell': 'Shell',
    'esso': 'Esso',
    'texaco': 'Texaco',
    'uber': 'Uber',
    'deliveroo': 'Deliveroo',
    'just eat': 'Just Eat',
}

# Store / business category words.
MERCHANT_KEYWORDS = (
    'store', 'stores', 'shop', 'supermarket', 'superstore', 'market', 'express',
    'extra', 'metro', 'local', 'cafe', 'café', 'coffee', 'restaurant', 'bar',
    'grill', 'kitchen', 'bakery', 'pharmacy', 'chemist', 'ltd', 'limited', 'plc',
    'inc', 'llc', 'company', 'foods', 'deli', 'pub', 'hotel', 'garage', 'station',
    'services', 'outlet', 'boutique', 'pizzeria', 'diner', 'takeaway',
)

RECEIPT_KEYWORDS = (
    'receipt', 'till', 'cashier', 'served by', 'thank you', 'vat reg', 'vat no',
    'store no', 'transaction', 'invoice', 'customer copy',
)

STREET_KEYWORDS = (
    'street', 'st', 'road', 'rd', 'avenue', 'ave', 'lane', 'ln', 'way', 'drive',
    'dr', 'close', 'square', 'sq', 'place', 'pl', 'court', 'ct', 'terrace', 'row',
    'boulevard', 'blvd', 'highway', 'hwy', 'parade', 'crescent', 'broadway',
    'hill', 'walk', 'gardens', 'grove', 'mews', 'plaza', 'retail park',
    'shopping centre', 'shopping center', 'high st', 'high street', 'precinct',
)

KNOWN_CITIES = (
    'london', 'manchester', 'birmingham', 'leeds', 'glasgow', 'edinburgh',
    'liverpool', 'bristol', 'sheffield', 'cardiff', 'belfast', 'newcastle',
    'nottingham', 'leicester', 'southampton', 'brighton', 'oxford', 'cambridge',
    'york', 'bath', 'reading', 'coventry', 'aberdeen', 'dundee', 'swansea',
    'plymouth', 'norwich', 'exeter', 'derby', 'milton keynes',
    'new york', 'los angeles', 'chicago', 'houston', 'san francisco', 'seattle',
    'boston', 'austin', 'toronto', 'vancouver', 'montreal', 'dublin', 'paris',
    'berlin', 'madrid', 'amsterdam',
)

PROMO_KEYWORDS = (
    'offer', 'offers', 'promotion', 'promo', 'win', 'competition', 'survey',
    'feedback', 'visit us', 'follow us', 'download', 'app', 'voucher', 'coupon',
    'points', 'clubcard', 'nectar', 'reward', 'rewards', 'loyalty', 'thank you',
    'thanks', 'welcome', 'opening hours', 'open', 'vat reg', 'vat no', 'tel',
    'phone', 'receipt', 'returns', 'refund policy', 'keep your receipt',
    'customer copy', 'please retain', 'www', 'http',
)

# Contexts that disqualify a price from being the document total.
BLACKLIST_CONTEXTS = (
    'points', 'pts', 'saving', 'savings', 'saved', 'change', 'voucher',
    'discount', 'clubcard', 'nectar', 'loyalty', 'reward', 'cashback',
    'coupon', 'tendered', 'rewards',
)

# Discount-like item names are the only ones allowed to carry negative prices.
DISCOUNT_PATTERN = re.compile(
    r'\b(?:discount|saving|savings|offer|promo|promotion|coupon|voucher|reduction|'
    r'reduced|multibuy|multi-buy|price\s*cut|deal|markdown|rollback|less|off|'
    r'clubcard\s+price|nectar\s+price|member\s+price)\b',
    re.IGNORECASE,
)

UK_POSTCODE = re.compile(r'\b[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}\b')
US_STATE_ZIP = re.compile(r'\b[A-Z]{2}\s+\d{5}(?:-\d{4})?\b')
CA_POSTCODE = re.compile(r'\b[A-Z]\d[A-Z]\s?\d[A-Z]\d\b')


def _keyword_pattern(words) -> re.Pattern:
    escaped = sorted((re.escape(w) for w in words), key=len, reverse=True)
    return re.compile(r'(?<![\w])(?:' + '|'.join(escaped) + r')(?![\w])\.?', re.IGNORECASE)


MERCHANT_KEYWORD_PATTERN = _keyword_pattern(MERCHANT_KEYWORDS)
RECEIPT_KEYWORD_PATTERN = _keyword_pattern(RECEIPT_KEYWORDS)
STREET_PATTERN = _keyword_pattern(STREET_KEYWORDS)
CITY_PATTERN = _keyword_pattern(KNOWN_CITIES)
PROMO_PATTERN = _keyword_pattern(PROMO_KEYWORDS)
BLACKLIST_PATTERN = _keyword_pattern(BLACKLIST_CONTEXTS)


def normalize_merchant_key(text: str) -> str:
    """Lowercase and drop punctuation so "SAINSBURY'S" and "Sainsburys" compare equal."""
    text = text.lower().replace("'", '').replace('’', '').replace('-', '')
    text = re.sub(r'[^a-z0-9& ]', ' ', text)
    return re.sub(r'\s+', ' ', text).strip()


def find_known_merchant(text: str):
    """Return the display name of the first known merchant mentioned in text."""
    key = normalize_merchant_key(text)
    if not key:
        return None
    for name in sorted(KNOWN_MERCHANTS, key=len, reverse=True):
        if re.search(r'(?<![a-z0-9&])' + re.escape(name) + r'(?![a-z0-9&])', key):
            return KNOWN_MERCHANTS[name]
    return None


def has_postcode(line: str) -> bool:
    upper = line.upper()
    return bool(
        UK_POSTCODE.search(upper) or US_STATE_ZIP.search(upper) or CA_POSTCODE.search(upper)
    )
