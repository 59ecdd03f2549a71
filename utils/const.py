from db.enums import Quality

UA_HEADER = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36"
}

# Provider key prefixes used in the comma separated api key string, e.g. "rd=xxx,tb=yyy"
PROVIDER_KEY_PREFIXES = {
    "rd": "realdebrid",
    "tb": "torbox",
    "pr": "premiumize",
    "dl": "debridlink",
}

STREAMING_PROVIDERS_SHORT_NAMES = {
    "debridlink": "DL",
    "premiumize": "PM",
    "realdebrid": "RD",
    "torbox": "TRB",
}

# Ideal size band in MB per quality tier, (min, max)
IDEAL_SIZE_BANDS = {
    Quality.UHD: (10000, 80000),
    Quality.FHD: (2000, 16000),
    Quality.HD: (1000, 8000),
    Quality.SD: (500, 4000),
}

QUALITY_SYMBOLS = {
    Quality.UHD: "🎞️ 4K",
    Quality.FHD: "📺 1080p",
    Quality.HD: "💻 720p",
    Quality.SD: "📱 480p",
    Quality.UNKNOWN: "❔",
}

# Files whose names contain any of these are never picked for playback
EXCLUDED_FILE_KEYWORDS = (
    "sample",
    "trailer",
    "extra",
    "behind",
    "featurette",
    "bonus",
)

UNVERIFIED_CACHE_LABEL = "🔄 unverified"
CACHED_LABEL = "⚡️"
