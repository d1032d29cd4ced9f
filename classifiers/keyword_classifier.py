"""
Keyword Classifier Module - Category and direction inference by keyword tables

The tables are process-wide and read-only: tuples and MappingProxyType so no
code path can mutate them. Rule order encodes priority; the first matching
rule wins.
"""

import re
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

# ------------------------------------------------------------ enumerations

EXPENSE_CATEGORIES = (
    'Housing', 'Transportation', 'Food & Dining', 'Entertainment', 'Healthcare',
    'Childcare', 'Education', 'Utilities', 'Insurance', 'Clothing', 'Other',
)

INCOME_CATEGORIES = (
    'Salary', 'Freelance', 'Investment', 'Rental', 'Business', 'Government Benefits', 'Other',
)

# Shared with the AI prompt builder and with any caller persisting records
ALLOWED_CATEGORIES = tuple(dict.fromkeys(EXPENSE_CATEGORIES + INCOME_CATEGORIES))

QUOTE_CATEGORIES = ('labour', 'materials', 'fixtures', 'sundries', 'vat', 'other')

SURVEY_CATEGORIES = (
    'Roof', 'Chimney', 'Damp', 'Fire safety', 'Windows', 'Doors', 'Electrics', 'Gas',
    'Heating', 'Plumbing', 'Drainage', 'Structure', 'Asbestos', 'Timber', 'Pests',
    'Security', 'Insulation', 'External walls', 'General',
)

EMAIL_TOPICS = (
    'bathroom', 'kitchen', 'plumbing', 'heating', 'boiler', 'electrics', 'roofing',
    'extension', 'garden', 'decoration', 'quote', 'site visit', 'survey',
    'installation', 'repair', 'replacement', 'general',
)

# ------------------------------------------------------------- statements

STARLING_CATEGORY_MAP = MappingProxyType({
    'GROCERIES': ('Food & Dining', 'debit', None),
    'EATING_OUT': ('Food & Dining', 'debit', None),
    'ENTERTAINMENT': ('Entertainment', 'debit', None),
    'TRANSPORT': ('Transportation', 'debit', None),
    'HOLIDAYS': ('Entertainment', 'debit', None),
    'LIFESTYLE': ('Entertainment', 'debit', None),
    'SHOPPING': ('Clothing', 'debit', None),
    'GENERAL': ('Food & Dining', 'debit', None),
    'PAYMENTS': ('Utilities', 'debit', 'Likely bill payment - review'),
    'TRANSFER': ('Housing', 'debit', 'Transfer - may be rent/mortgage'),
    'DEBT_REPAYMENT': ('Housing', 'debit', 'Debt repayment - review'),
    'INCOME': ('Salary', 'credit', None),
    'BILLS': ('Utilities', 'debit', None),
    'FAMILY': ('Childcare', 'debit', None),
    'PERSONAL_CARE': ('Healthcare', 'debit', None),
    'HOME': ('Housing', 'debit', None),
    'FINANCES': ('Insurance', 'debit', None),
    'CHARITY': ('Entertainment', 'debit', None),
    'PETS': ('Healthcare', 'debit', None),
    'SAVINGS': ('Investment', 'credit', None),
})

CREDIT_HINTS = (
    'salary', 'refund', 'reversal', 'interest', 'credit', 'payment received',
    'bacs', 'bgc', 'bank giro', 'transfer in', 'faster payment in', 'cash deposit',
    'dividend', 'income', 'benefit',
)

DEBIT_HINTS = (
    'dd', 'direct debit', 'standing order', 'card', 'wlt', 'purchase', 'pos',
    'contactless', 'payment', 'transfer', 'tfl', 'uber', 'amazon', 'atm',
)

CATEGORY_HINTS = (
    # Supermarkets
    (('tesco', 'sainsbury', 'aldi', 'lidl', 'waitrose', 'asda', 'm&s', 'marks & spencer',
      'marks and spencer', 'iceland', 'morrisons', 'co-op', 'coop', 'cooperative', 'ocado',
      'booths', 'budgens', 'spar', 'costco', 'farmfoods', 'jd food', 'nisa', 'londis',
      'premier', 'costcutter'), 'Food & Dining'),
    # Restaurants and takeaway
    (('restaurant', 'cafe', 'coffee', 'starbucks', 'pret', 'pret a manger', 'mcdonald',
      'mcdonalds', 'kfc', 'burger', 'burger king', 'deliveroo', 'ubereats', 'uber eat',
      'just eat', 'justeat', 'dominos', 'pizza', 'nandos', 'wagamama', 'subway', 'greggs',
      'costa', 'caffe nero', 'eat', 'itsu', 'leon', 'five guys', 'wendys', 'gourmet',
      'kitchen', 'chippy', 'fish & chip', 'fish and chip', 'bakery', 'deli', 'food',
      'takeaway', 'takeout', 'dining', 'meals', 'lunch', 'dinner', 'breakfast', 'brunch',
      'snack', 'dessert'), 'Food & Dining'),
    # Public transport
    (('tfl', 'transport for london', 'oyster', 'train', 'rail', 'national rail', 'avanti',
      'lner', 'gwr', 'southwestern', 'thameslink', 'southern rail', 'northern rail',
      'southeastern', 'bus', 'arriva', 'stagecoach', 'first bus', 'megabus',
      'national express', 'tube', 'underground', 'metro', 'tramlink'), 'Transportation'),
    # Ride services, fuel and motoring
    (('uber', 'bolt', 'lyft', 'freenow', 'kapten', 'taxi', 'cab', 'minicab', 'shell', 'bp',
      'esso', 'texaco', 'gulf', 'petrol', 'fuel', 'diesel', 'ev charging', 'pod point',
      'charge point', 'parking', 'ncp', 'ringgo', 'paybyphone', 'ringo', 'car wash', 'mot',
      'kwik fit', 'halfords', 'euro car parts', 'dvla', 'car tax', 'congestion', 'dartford',
      'toll', 'motorway', 'bridge toll'), 'Transportation'),
    # Streaming
    (('netflix', 'disney', 'disney+', 'amazon prime', 'prime video', 'apple tv', 'now tv',
      'spotify', 'apple music', 'youtube', 'youtube premium', 'deezer', 'tidal', 'audible',
      'kindle', 'twitch', 'crunchyroll', 'paramount', 'discovery+', 'britbox', 'hayu'),
     'Entertainment'),
    # Activities
    (('cinema', 'odeon', 'vue', 'cineworld', 'showcase', 'picturehouse', 'theatre', 'theater',
      'concert', 'ticketmaster', 'eventbrite', 'seetickets', 'dice', 'museum', 'gallery',
      'exhibition', 'zoo', 'aquarium', 'theme park', 'alton towers', 'thorpe park',
      'legoland', 'bowling', 'arcade', 'laser', 'escape room', 'golf', 'tennis', 'swimming',
      'leisure centre', 'gym membership', 'fitness first', 'pure gym', 'puregym',
      'david lloyd', 'virgin active', 'nuffield', 'the gym', 'anytime fitness',
      'playstation', 'xbox', 'nintendo', 'steam', 'game', 'gaming'), 'Entertainment'),
    (('pharmacy', 'boots', 'superdrug', 'lloyds pharmacy', 'well pharmacy', 'nhs', 'clinic',
      'dentist', 'dental', 'doctor', 'health', 'hospital', 'medical', 'optician',
      'specsavers', 'vision express', 'optical', 'eye test', 'physio', 'chiropractor',
      'osteopath', 'therapy', 'counselling', 'bupa', 'prescription', 'medicine', 'vitamins',
      'holland & barrett'), 'Healthcare'),
    (('school', 'nursery', 'childcare', 'daycare', 'creche', 'childminder', 'tutor',
      'tutoring', 'kids club', 'after school', 'breakfast club'), 'Childcare'),
    (('university', 'uni', 'college', 'tuition', 'course', 'education', 'student',
      'learning', 'training', 'skillshare', 'coursera', 'udemy', 'masterclass',
      'linkedin learning', 'books', 'textbook', 'stationery', 'whsmith'), 'Education'),
    # Energy
    (('british gas', 'bg', 'edf', 'eon', 'e.on', 'scottish power', 'sse', 'bulb',
      'octopus energy', 'ovo', 'utilita', 'utility warehouse', 'shell energy', 'electric',
      'electricity', 'gas bill', 'energy bill', 'heating'), 'Utilities'),
    # Water and council
    (('water', 'thames water', 'severn trent', 'anglian water', 'united utilities',
      'yorkshire water', 'southern water', 'welsh water', 'council tax', 'council',
      'borough', 'city of', 'local authority'), 'Utilities'),
    # Telecom
    (('ee', 'vodafone', 'o2', 'three', '3 mobile', 'giffgaff', 'tesco mobile',
      'virgin mobile', 'sky mobile', 'bt mobile', 'lebara', 'lycamobile', 'sky',
      'virgin media', 'bt', 'talktalk', 'plusnet', 'hyperoptic', 'community fibre',
      'broadband', 'wifi', 'internet', 'phone', 'mobile', 'sim'), 'Utilities'),
    (('insurance', 'insur', 'aviva', 'axa', 'admiral', 'direct line', 'churchill',
      'comparethemarket', 'gocompare', 'moneysupermarket', 'confused.com', 'car insur',
      'home insur', 'life insur', 'travel insur', 'pet insur', 'premium', 'policy', 'cover',
      'protection', 'legal & general', 'prudential'), 'Insurance'),
    (('rent', 'rental', 'mortgage', 'landlord', 'lettings', 'estate agent', 'halifax',
      'nationwide', 'natwest', 'barclays mortgage', 'lloyds mortgage', 'housing assoc',
      'rightmove', 'zoopla', 'openrent', 'spareroom', 'service charge', 'ground rent',
      'maintenance', 'repairs'), 'Housing'),
    (('primark', 'hm', 'h&m', 'zara', 'next', 'uniqlo', 'gap', 'river island', 'topshop',
      'asos', 'boohoo', 'prettylittlething', 'missguided', 'shein', 'tk maxx', 'tkmaxx',
      'matalan', 'new look', 'sports direct', 'jd sports', 'footlocker', 'nike', 'adidas',
      'puma', 'dr martens', 'clarks', 'debenhams', 'john lewis', 'harrods', 'selfridges',
      'house of fraser', 'clothing', 'apparel', 'fashion', 'shoes', 'footwear',
      'accessories', 'jewellery', 'jewelry', 'watch', 'bag', 'handbag'), 'Clothing'),
    # General and online shopping
    (('amazon', 'ebay', 'paypal', 'etsy', 'wish', 'aliexpress', 'argos', 'currys', 'ao.com',
      'appliances online', 'very', 'littlewoods', 'home bargains', 'b&m', 'poundland',
      'wilko', 'the range', 'dunelm', 'ikea', 'homesense', 'furniture', 'homeware', 'diy',
      'b&q', 'screwfix', 'wickes', 'toolstation', 'homebase', 'robert dyas'), 'Other'),
    # Transfers, flagged for review
    (('transfer', 'payment to', 'payment from', 'standing order', 'direct debit',
      'faster payment', 'bank transfer', 'internal transfer'), 'Other'),
)

# Second pass: broader transaction-type patterns, each with ordered refinements
CATEGORY_PATTERNS = (
    (re.compile(r'card\s*(payment|purchase)|contactless|\bpos\b|\bwlt\b'), (
        (re.compile(r'food|eat|drink|coffee|cafe|restaurant|market'), 'Food & Dining'),
        (re.compile(r'cloth|shoe|wear|dress|shirt|fashion'), 'Clothing'),
        (re.compile(r'pharmacy|health|medical|dental'), 'Healthcare'),
        (re.compile(r'petrol|fuel|parking|car|transport'), 'Transportation'),
    ), 'Food & Dining'),
    (re.compile(r'direct debit|\bdd\s|d/d|standing order|s/o'), (
        (re.compile(r'insur|cover|premium|protect'), 'Insurance'),
        (re.compile(r'energy|gas|electric|water|power|utility'), 'Utilities'),
        (re.compile(r'rent|mortgage|property|housing'), 'Housing'),
        (re.compile(r'gym|fitness|sport|leisure|entertainment'), 'Entertainment'),
        (re.compile(r'phone|mobile|broadband|internet|tv|sky|virgin'), 'Utilities'),
    ), 'Utilities'),
    (re.compile(r'faster payment|bank transfer|bacs|chaps|internal transfer'), (
        (re.compile(r'rent|landlord|property|housing'), 'Housing'),
        (re.compile(r'salary|wage|pay|income'), 'Salary'),
    ), 'Housing'),
    (re.compile(r'\batm\b|cash|withdraw'), (), 'Food & Dining'),
    (re.compile(r'online|www\.|\.com|\.co\.uk|web'), (), 'Clothing'),
    (re.compile(r'monthly|subscription|member|annual'), (), 'Entertainment'),
)

# ------------------------------------------------------------------ quotes

QUOTE_CATEGORY_KEYWORDS = (
    ('labour', ('labour', 'labor', 'work', 'installation', 'fitting', 'removal', 'demolition',
                'hours', 'day rate', 'man hours', 'workmanship', 'skill', 'trade')),
    ('materials', ('materials', 'parts', 'supplies', 'hardware', 'fixings', 'screws', 'nails',
                   'timber', 'wood', 'plywood', 'cement', 'plaster', 'tiles', 'paint',
                   'silicone', 'adhesive', 'grout', 'copper', 'pipe', 'cable', 'wire')),
    ('fixtures', ('bath', 'shower', 'toilet', 'basin', 'sink', 'tap', 'taps', 'faucet',
                  'radiator', 'boiler', 'valve', 'mixer', 'cabinet', 'unit', 'vanity',
                  'towel rail', 'mirror', 'light', 'extractor', 'fan', 'socket', 'switch')),
    ('sundries', ('sundries', 'sundry', 'misc', 'miscellaneous', 'consumables', 'skip',
                  'waste', 'disposal', 'delivery', 'parking', 'permit', 'access')),
)

QUOTE_CATEGORY_PATTERNS = (
    (re.compile(r'plaster|skim|render'), 'labour'),
    (re.compile(r'tile|tiling'), 'labour'),
    (re.compile(r'install|fitting|preparation|fix\b'), 'labour'),
    (re.compile(r'spot\s*light|extractor|mirror|shower|bath|toilet|basin|towel\s*rail'), 'fixtures'),
    (re.compile(r'underfloor|heating|wiring|electric'), 'fixtures'),
    (re.compile(r'sundries|waste|disposal|delivery|skip'), 'sundries'),
)

DISCOUNT_PATTERN = re.compile(r'discount|credit|deduction|off\s*$', re.I)

# ----------------------------------------------------------------- surveys

SURVEY_RULES = (
    ('Roof', 'Roofing contractor', re.compile(r'roof|parapet|gutter|flashing|ridge|tile|valley|soffit|fascia', re.I)),
    ('Chimney', 'Roofing contractor', re.compile(r'chimney|flue|stack|pot', re.I)),
    ('Damp', 'PCA damp and timber specialist', re.compile(r'damp|moisture|leak|leaking|ingress|condensation', re.I)),
    ('Fire safety', 'Joiner / electrician', re.compile(r'fire|escape route|smoke alarm|heat alarm|alarm', re.I)),
    ('Windows', 'Glazing contractor', re.compile(r'window|glazing|sash|frame', re.I)),
    ('Doors', 'Glazing contractor / locksmith', re.compile(r'door|lock|hinge|threshold', re.I)),
    ('Electrics', 'Qualified electrician', re.compile(r'electric|wiring|consumer unit|fuse|eicr|socket|rcd', re.I)),
    ('Gas', 'Gas Safe engineer', re.compile(r'gas|boiler|combination boiler|flue|gas safe', re.I)),
    ('Heating', 'Heating engineer', re.compile(r'heating|radiator|hot water|boiler', re.I)),
    ('Plumbing', 'Plumber', re.compile(r'plumbing|pipework|lead pipe|stopcock|water supply', re.I)),
    ('Drainage', 'Drainage specialist', re.compile(r'drain|gully|soil vent|drainage|cctv survey', re.I)),
    ('Structure', 'Structural engineer', re.compile(r'structural|movement|settlement|crack|lintel|foundation|sleeper wall', re.I)),
    ('Asbestos', 'Asbestos surveyor', re.compile(r'asbestos|artex|textured coating', re.I)),
    ('Timber', 'PCA damp and timber specialist', re.compile(r'timber|rot|decay|woodworm|beetle', re.I)),
    ('Pests', 'Pest control', re.compile(r'rodent|vermin|infestation', re.I)),
    ('Security', 'Locksmith', re.compile(r'security|lock|secure|deadbolt', re.I)),
    ('Insulation', 'Insulation contractor', re.compile(r'insulation|thermal', re.I)),
    ('External walls', 'Builder', re.compile(r'external wall|render|brickwork|pointing|masonry', re.I)),
)

# ------------------------------------------------------------------ emails

EMAIL_TOPIC_KEYWORDS = (
    ('bathroom', 'bathroom'), ('kitchen', 'kitchen'), ('plumbing', 'plumbing'),
    ('heating', 'heating'), ('boiler', 'boiler'), ('electric', 'electrics'),
    ('rewire', 'electrics'), ('roof', 'roofing'), ('extension', 'extension'),
    ('garden', 'garden'), ('decor', 'decoration'), ('paint', 'decoration'),
    ('quote', 'quote'), ('visit', 'site visit'), ('survey', 'survey'),
    ('install', 'installation'), ('repair', 'repair'), ('replace', 'replacement'),
)


def _alnum(text: str) -> str:
    return re.sub(r'[^a-z0-9]', '', text)


def contains_keyword(text: str, keyword: str) -> bool:
    """
    Keyword test used by every table.

    Keywords of three characters or fewer ('ee', 'bt', 'pos') must stand as
    whole words; longer ones match anywhere so 'sainsbury' finds 'sainsburys'.
    """
    if len(keyword) <= 3:
        return re.search(r'(?<![a-z0-9])' + re.escape(keyword) + r'(?![a-z0-9])', text) is not None
    return keyword in text


class KeywordClassifier:
    """
    Infer categories and directions from free-text descriptions.

    The instance only holds references to the read-only tables above; pass
    alternatives to the constructor to classify against other tables.
    """

    def __init__(self, category_hints=CATEGORY_HINTS, category_patterns=CATEGORY_PATTERNS,
                 credit_hints=CREDIT_HINTS, debit_hints=DEBIT_HINTS):
        self.category_hints = category_hints
        self.category_patterns = category_patterns
        self.credit_hints = credit_hints
        self.debit_hints = debit_hints

    def infer_category(self, description: str, fallback: str = 'Other') -> Tuple[str, bool]:
        """
        Infer a statement category from a description.

        Args:
            description: Transaction description
            fallback: Category returned when nothing matches

        Returns:
            Tuple of (category, matched) where matched is False only when the
            fallback was used
        """
        lower = (description or '').lower()
        normalized = _alnum(lower)

        for keywords, category in self.category_hints:
            if any(contains_keyword(lower, keyword) for keyword in keywords):
                return category, True
            for keyword in keywords:
                squashed = _alnum(keyword)
                if len(squashed) > 3 and squashed in normalized:
                    return category, True

        for trigger, refinements, default in self.category_patterns:
            if trigger.search(lower):
                for pattern, category in refinements:
                    if pattern.search(lower):
                        return category, True
                return default, True

        return fallback, False

    def infer_direction(self, description: str) -> Optional[str]:
        """'credit' or 'debit' from description hints, credit hints first."""
        lower = (description or '').lower()
        if any(contains_keyword(lower, hint) for hint in self.credit_hints):
            return 'credit'
        if any(contains_keyword(lower, hint) for hint in self.debit_hints):
            return 'debit'
        return None

    def map_bank_category(self, bank_category: str) -> Optional[Dict]:
        """Translate a bank-supplied spending category (Starling style)."""
        if not bank_category:
            return None
        key = re.sub(r'\s+', '_', bank_category.strip().upper())
        mapped = STARLING_CATEGORY_MAP.get(key)
        if not mapped:
            return None
        category, direction, warning = mapped
        return {'category': category, 'direction': direction, 'warning': warning}

    def categorize_quote_item(self, description: str) -> Tuple[str, bool]:
        """Quote cost category for a line item description."""
        lower = (description or '').lower()
        if DISCOUNT_PATTERN.search(description or ''):
            return 'other', True
        for category, keywords in QUOTE_CATEGORY_KEYWORDS:
            if any(contains_keyword(lower, keyword) for keyword in keywords):
                return category, True
        for pattern, category in QUOTE_CATEGORY_PATTERNS:
            if pattern.search(lower):
                return category, True
        return 'other', False

    def detect_survey_category(self, text: str) -> Tuple[str, Optional[str]]:
        """Survey defect category and the contractor usually instructed for it."""
        for category, contractor, pattern in SURVEY_RULES:
            if pattern.search(text or ''):
                return category, contractor
        return 'General', None

    def detect_topics(self, text: str, limit: int = 5) -> List[str]:
        lower = (text or '').lower()
        topics = []
        for keyword, topic in EMAIL_TOPIC_KEYWORDS:
            if keyword in lower and topic not in topics:
                topics.append(topic)
        return topics[:limit]

    @staticmethod
    def categories_for(domain: str, direction: str = None) -> Tuple[str, ...]:
        """Closed category enumeration for a record domain."""
        if domain == 'statement':
            return INCOME_CATEGORIES if direction == 'credit' else EXPENSE_CATEGORIES
        if domain == 'quote':
            return QUOTE_CATEGORIES
        if domain == 'survey':
            return SURVEY_CATEGORIES
        if domain == 'email':
            return EMAIL_TOPICS
        raise ValueError(f"Unknown record domain: {domain}")


DEFAULT_CLASSIFIER = KeywordClassifier()


def infer_category(description: str, fallback: str = 'Other') -> Tuple[str, bool]:
    return DEFAULT_CLASSIFIER.infer_category(description, fallback)


def infer_direction(description: str) -> Optional[str]:
    return DEFAULT_CLASSIFIER.infer_direction(description)
