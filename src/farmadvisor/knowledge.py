"""Static agronomy tables used by the fallback responder.

``TOPICS`` is ordered: the first bucket whose keywords match a message wins.
"""

import re
from typing import Dict, NamedTuple, Optional, Tuple


class Topic(NamedTuple):
    name: str
    title: str
    pattern: "re.Pattern[str]"
    guidance: Tuple[str, ...]
    actions: Tuple[str, ...]
    # Which crop-guide entry answers this topic for a named crop.
    aspect: str = "overview"


def _words(*fragments: str) -> "re.Pattern[str]":
    return re.compile(r"\b(?:" + "|".join(fragments) + r")\b")


TOPICS: Tuple[Topic, ...] = (
    Topic(
        "pests",
        "Pest & Disease Management",
        _words(
            r"pests?", r"pesticides?", r"insects?", r"bugs?", r"aphids?",
            r"caterpillars?", r"worms?", r"beetles?", r"mites?", r"diseases?",
            r"fung\w*", r"blight", r"mou?ld", r"rot", r"wilt\w*", r"infest\w*",
            r"sick", r"spots?",
        ),
        (
            "Inspect plants at least twice a week, checking leaf undersides",
            "Remove and destroy affected leaves or plants to stop the spread",
            "Encourage beneficial insects with flowering border plants",
            "Start with organic controls such as neem oil or insecticidal soap",
            "Rotate crop families to break pest and disease cycles",
        ),
        (
            "Inspect plants for pests",
            "Remove affected plant parts",
            "Apply organic pest control",
            "Encourage beneficial insects",
        ),
        "pests",
    ),
    Topic(
        "fertilizer",
        "Fertilizer & Nutrient Management",
        _words(
            r"fertili[sz]\w*", r"nutrients?", r"nitrogen", r"phosphorus",
            r"potassium", r"npk", r"manure", r"urea", r"feed\w*",
            r"deficien\w*", r"yellow\w*",
        ),
        (
            "Base fertilizer rates on a soil test rather than guesswork",
            "Split nitrogen into several smaller doses across the season",
            "Combine organic matter (compost, manure) with mineral fertilizer",
            "Yellowing older leaves often signal nitrogen deficiency",
            "Avoid fertilizing right before heavy rain to limit run-off",
        ),
        (
            "Get a soil nutrient test",
            "Plan a split fertilization schedule",
            "Add compost or well-rotted manure",
        ),
        "fertilizer",
    ),
    Topic(
        "planting",
        "Planting & Crop Selection",
        _words(
            r"plant(?:ing)?", r"sow\w*", r"seeds?", r"seedlings?",
            r"transplant\w*", r"crops? to grow", r"what (?:should|can) i grow",
            r"varieties", r"variety", r"rotation", r"intercrop\w*", r"spacing",
        ),
        (
            "Choose varieties suited to your local climate and season",
            "Plant at the start of the rainy season or when irrigation is reliable",
            "Follow recommended spacing to allow air circulation",
            "Rotate crop families each season to protect soil health",
            "Harden off seedlings for a week before transplanting",
        ),
        (
            "Check the planting calendar",
            "Choose climate-suited varieties",
            "Plan a crop rotation",
        ),
        "planting",
    ),
    Topic(
        "weather",
        "Weather & Climate Adaptation",
        _words(
            r"weather", r"rain\w*", r"storms?", r"typhoons?", r"floods?",
            r"drought", r"climate", r"forecast\w*", r"wind\w*", r"hot",
            r"cold", r"seasons?",
        ),
        (
            "Check the forecast before irrigating, spraying or fertilizing",
            "Skip irrigation when heavy rain is expected",
            "Protect young plants from strong wind with stakes or windbreaks",
            "Use shade cloth and mulch during heat waves",
            "Keep drainage channels clear before the rainy season",
        ),
        (
            "Review the weekly forecast",
            "Adjust the irrigation schedule",
            "Prepare drainage channels",
        ),
        "climate",
    ),
    Topic(
        "soil",
        "Soil Health & Compost",
        _words(
            r"soils?", r"compost\w*", r"mulch\w*", r"organic matter", r"tillage",
            r"till\w*", r"compaction", r"clay", r"sandy", r"loam\w*", r"earthworms?",
        ),
        (
            "Test soil pH regularly (ideal range 6.0-7.0 for most crops)",
            "Add compost to improve structure and water holding capacity",
            "Avoid working wet soil to prevent compaction",
            "Keep soil covered with mulch or cover crops",
        ),
        (
            "Test soil pH",
            "Add organic compost",
            "Check for compaction",
            "Consider crop rotation",
        ),
        "soil",
    ),
    Topic(
        "irrigation",
        "Water Management",
        _words(
            r"water\w*", r"irrigat\w*", r"drip", r"sprinklers?", r"dry",
            r"wet", r"drain\w*",
        ),
        (
            "Water deeply but less often to encourage deep roots",
            "Check soil moisture 5-8 cm deep before watering",
            "Water early in the morning to reduce evaporation",
            "Drip irrigation saves water and keeps leaves dry",
            "Mulch to keep moisture in the soil",
        ),
        (
            "Check soil moisture levels",
            "Adjust irrigation schedule",
            "Install drip irrigation",
            "Monitor weather forecast",
        ),
        "water",
    ),
    Topic(
        "tools",
        "Tools & Equipment",
        _words(
            r"tools?", r"equipment", r"tractors?", r"machine\w*", r"pumps?",
            r"sprayers?", r"maintenance", r"repair\w*",
        ),
        (
            "Clean and dry tools after each use to prevent rust and disease spread",
            "Service pumps and engines before the busy season",
            "Calibrate sprayers so chemicals are applied at the right rate",
            "Keep a maintenance log for every machine",
        ),
        (
            "Schedule equipment maintenance",
            "Calibrate the sprayer",
            "Check pump and irrigation lines",
        ),
    ),
    Topic(
        "harvest",
        "Harvest & Storage",
        _words(
            r"harvest\w*", r"pick\w*", r"ripe\w*", r"storage", r"store",
            r"storing", r"post-?harvest", r"dry(?:ing)? grain",
        ),
        (
            "Harvest in the cool of the morning for better shelf life",
            "Handle produce gently to avoid bruising",
            "Dry grain to safe moisture levels before storage",
            "Store produce in clean, ventilated and pest-proof spaces",
        ),
        (
            "Plan harvest timing",
            "Prepare clean storage",
            "Check grain moisture before storage",
        ),
        "harvest",
    ),
    Topic(
        "business",
        "Farm Business & Economics",
        _words(
            r"pric\w*", r"markets?", r"sell\w*", r"profit\w*", r"costs?",
            r"budget\w*", r"income", r"loans?", r"money", r"buyers?",
        ),
        (
            "Track every input cost so you know your cost per kilogram",
            "Compare prices at several markets before selling",
            "Stagger plantings to sell over a longer period",
            "Consider cooperatives for better prices and shared equipment",
        ),
        (
            "Keep farm financial records",
            "Check current market prices",
            "Plan staggered plantings",
        ),
    ),
    Topic(
        "sustainability",
        "Sustainable Farming",
        _words(
            r"sustainab\w*", r"organic", r"eco\w*", r"environment\w*",
            r"biodiversity", r"cover crops?", r"regenerative", r"carbon",
        ),
        (
            "Build soil organic matter with compost and cover crops",
            "Use integrated pest management before chemical sprays",
            "Plant hedgerows and flowers to support pollinators",
            "Capture and store rainwater where possible",
        ),
        (
            "Plant cover crops",
            "Start composting farm waste",
            "Adopt integrated pest management",
        ),
    ),
    Topic(
        "livestock",
        "Livestock Care",
        _words(
            r"livestock", r"cows?", r"cattle", r"goats?", r"pigs?", r"chickens?",
            r"poultry", r"ducks?", r"animals?", r"fodder", r"graz\w*",
        ),
        (
            "Provide clean water and shade at all times",
            "Keep a vaccination and deworming schedule",
            "Rotate grazing areas to prevent overgrazing",
            "Use manure as compost for your crop fields",
        ),
        (
            "Review the vaccination schedule",
            "Plan rotational grazing",
            "Compost animal manure",
        ),
    ),
    Topic(
        "technology",
        "Farm Technology",
        _words(
            r"sensors?", r"technolog\w*", r"apps?", r"drones?", r"automat\w*",
            r"iot", r"data", r"dashboard", r"smart",
        ),
        (
            "Place soil sensors at root depth in representative spots",
            "Review sensor trends weekly, not just single readings",
            "Use alerts to react quickly to dry or waterlogged soil",
            "Combine sensor data with the weather forecast for irrigation decisions",
        ),
        (
            "Review sensor data trends",
            "Request an additional sensor",
            "Set up irrigation alerts",
        ),
    ),
)


class CropGuide(NamedTuple):
    name: str
    pattern: "re.Pattern[str]"
    aspects: Dict[str, str]


CROPS: Tuple[CropGuide, ...] = (
    CropGuide(
        "tomatoes",
        _words(r"tomato(?:es)?"),
        {
            "overview": "Tomatoes like warm days (20-30°C), full sun and well-drained soil with pH 6.0-6.8.",
            "planting": "Transplant tomato seedlings at 4-6 weeks old, 45-60 cm apart, and stake them early.",
            "water": "Give tomatoes deep, regular watering; uneven watering causes blossom-end rot and split fruit.",
            "fertilizer": "Feed tomatoes with nitrogen early, then switch to potassium-rich fertilizer once flowering starts.",
            "pests": "Watch tomatoes for late blight, whiteflies and fruit borers; remove lower leaves to improve airflow.",
            "harvest": "Pick tomatoes when they show full color but are still firm; harvest every 2-3 days in peak season.",
            "soil": "Tomatoes need loose, fertile soil rich in organic matter with pH 6.0-6.8.",
        },
    ),
    CropGuide(
        "rice",
        _words(r"rice", r"paddy", r"paddies"),
        {
            "overview": "Rice grows best at 20-35°C with reliable water; most varieties take 100-150 days.",
            "planting": "Transplant rice seedlings at 20-25 days, 2-3 per hill, spaced about 20 x 15 cm.",
            "water": "Keep 3-5 cm of standing water in rice fields; alternate wetting and drying saves water after tillering.",
            "fertilizer": "Split nitrogen for rice into three doses: basal, tillering and panicle initiation.",
            "pests": "Scout rice for stem borers, brown planthoppers and blast, especially in humid weather.",
            "harvest": "Harvest rice when 80-85% of grains are golden, then dry to 14% moisture before storage.",
            "soil": "Rice tolerates heavy clay soils that hold water, with pH 5.5-7.0.",
        },
    ),
    CropGuide(
        "corn",
        _words(r"corn", r"maize"),
        {
            "overview": "Corn needs full sun, warm soil above 10°C and steady moisture at tasseling.",
            "planting": "Sow corn 3-5 cm deep in blocks of several rows to ensure good pollination.",
            "water": "Corn needs the most water at tasseling and silking; drought then cuts yields sharply.",
            "fertilizer": "Corn is a heavy nitrogen feeder; side-dress when plants are knee high.",
            "pests": "Check corn for fall armyworm in the leaf whorls and treat early.",
            "harvest": "Harvest grain corn when kernels are hard and dented; sweet corn when silks turn brown.",
            "soil": "Corn prefers deep, fertile loam with pH 5.8-7.0.",
        },
    ),
    CropGuide(
        "bananas",
        _words(r"bananas?", r"plantains?"),
        {
            "overview": "Bananas thrive at 26-30°C with high humidity, shelter from wind and rich, moist soil.",
            "planting": "Plant banana suckers (sword suckers are best) in pits of 60 cm, 2.5-3 m apart.",
            "water": "Bananas need plenty of water (around 25 mm per week) but cannot stand waterlogging.",
            "fertilizer": "Bananas are heavy potassium feeders; apply potassium-rich fertilizer every 2-3 months.",
            "pests": "Watch bananas for Panama wilt, sigatoka leaf spot and banana weevils; use clean suckers.",
            "harvest": "Harvest bananas when fruits are full and angular ridges round out, about 3 months after flowering.",
            "soil": "Bananas prefer deep, well-drained loam with pH 5.5-7.0 and lots of organic matter.",
        },
    ),
    CropGuide(
        "coffee",
        _words(r"coffee"),
        {
            "overview": "Coffee grows best at 18-24°C (arabica) or 22-28°C (robusta) with partial shade.",
            "planting": "Plant coffee seedlings at the start of the rainy season with shade trees nearby.",
            "water": "Coffee needs a short dry spell to trigger flowering, then regular water while berries develop.",
            "fertilizer": "Feed coffee with nitrogen and potassium after flowering and during berry development.",
            "pests": "Scout coffee for leaf rust and berry borer; prune for airflow and collect fallen berries.",
            "harvest": "Pick only ripe red coffee cherries, in several passes through the season.",
            "soil": "Coffee prefers deep, well-drained, slightly acidic soil (pH 5.0-6.5).",
        },
    ),
    CropGuide(
        "potatoes",
        _words(r"potato(?:es)?"),
        {
            "overview": "Potatoes prefer cool weather (15-20°C) and loose, well-drained soil.",
            "planting": "Plant seed potatoes 10 cm deep and 30 cm apart; hill soil around stems as they grow.",
            "water": "Keep potato soil evenly moist, especially when tubers form; stop watering as vines die back.",
            "fertilizer": "Potatoes need phosphorus and potassium at planting; avoid excess nitrogen.",
            "pests": "Watch potatoes for late blight and Colorado potato beetle; rotate fields every season.",
            "harvest": "Harvest potatoes 2-3 weeks after vines die back and cure them in a dark, airy place.",
            "soil": "Potatoes like sandy loam with pH 5.0-6.5; scab is worse in alkaline soil.",
        },
    ),
    CropGuide(
        "lettuce",
        _words(r"lettuces?", r"leafy greens"),
        {
            "overview": "Lettuce is a cool-season crop (15-20°C) that bolts in hot weather.",
            "planting": "Sow lettuce shallowly every 2-3 weeks for a continuous harvest.",
            "water": "Lettuce has shallow roots; water lightly and often to keep the top soil moist.",
            "fertilizer": "Give lettuce a light, steady supply of nitrogen for tender leaves.",
            "pests": "Check lettuce for aphids, slugs and downy mildew.",
            "harvest": "Harvest lettuce in the morning, before the heads bolt.",
            "soil": "Lettuce needs fertile, moisture-retentive soil with pH 6.0-7.0.",
        },
    ),
    CropGuide(
        "chili peppers",
        _words(r"chil(?:l)?i(?:es)?", r"peppers?", r"capsicums?"),
        {
            "overview": "Peppers love heat (21-29°C) and full sun but dislike waterlogged roots.",
            "planting": "Transplant pepper seedlings after the last cold spell, 45 cm apart.",
            "water": "Water peppers evenly; drought during flowering causes flower drop.",
            "fertilizer": "Feed peppers moderately; too much nitrogen gives leaves instead of fruit.",
            "pests": "Watch peppers for thrips, mites and anthracnose on fruit.",
            "harvest": "Pick peppers green or fully colored; regular picking encourages more fruit.",
            "soil": "Peppers prefer well-drained loam with pH 6.0-7.0.",
        },
    ),
)


def find_topic(text: str) -> Optional[Topic]:
    lowered = (text or "").lower()
    return next((topic for topic in TOPICS if topic.pattern.search(lowered)), None)


def find_crop(text: str) -> Optional[CropGuide]:
    lowered = (text or "").lower()
    return next((crop for crop in CROPS if crop.pattern.search(lowered)), None)


def crop_advice(crop: CropGuide, aspect: str) -> str:
    return crop.aspects.get(aspect) or crop.aspects["overview"]
