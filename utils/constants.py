"""
BookTrailer 공통 상수 모듈

모델명, 씬 구성, 단가표를 단일 소스로 관리합니다.
"""

# ─── Gemini / Veo 모델명 ─────────────────────────────────
MODEL_GEMINI_FLASH = "gemini-2.5-flash"
MODEL_GEMINI_FLASH_IMAGE = "gemini-2.5-flash-image"
MODEL_VEO = "veo-3.1-generate-preview"

# ─── 트레일러 구성 ────────────────────────────────────────
SCENE_COUNT = 3
SCENE_DURATION_SEC = 8
TOTAL_DURATION_SEC = SCENE_COUNT * SCENE_DURATION_SEC
SCENE_NUMBERS = (1, 2, 3)

# ─── Google Books ────────────────────────────────────────
GOOGLE_BOOKS_API_URL = "https://www.googleapis.com/books/v1/volumes"
CATALOG_TIMEOUT_SEC = 10
CATALOG_MAX_RESULTS = 10

# ─── 생성 호출 타임아웃 ───────────────────────────────────
TEXT_TIMEOUT_SEC = 120
KEYFRAME_TIMEOUT_SEC = 180
VIDEO_TIMEOUT_SEC = 360
VIDEO_POLL_INTERVAL_SEC = 5

# ─── 단가표 (USD, 추정치) ─────────────────────────────────
PRICING = {
    "script": 0.01,      # Gemini Flash 스크립트 1회
    "keyframe": 0.05,    # 키프레임 이미지 1장
    "video": 0.90,       # 8초 Veo 클립 1개
}
BASE_COST_USD = 0.02     # 그라운딩 + 스타일 바이블
RETRY_COST_FACTOR = 0.33

# 이미지/영상 생성 시 화면 텍스트 차단 접미사
NO_TEXT_SUFFIX = "(no text) (no subtitles) (no letters) (no words on screen)"
