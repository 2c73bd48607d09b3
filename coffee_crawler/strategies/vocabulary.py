"""Coffee vocabularies used by the default pattern rules."""

ORIGINS_KO = (
    "에티오피아", "콜롬비아", "파나마", "케냐", "페루", "온두라스", "과테말라",
    "니카라과", "볼리비아", "에콰도르", "브라질", "코스타리카", "예멘", "탄자니아",
    "자메이카", "인도네시아", "베트남", "인도", "하와이", "르완다", "부룬디",
)

ORIGINS_EN = (
    "Ethiopia", "Colombia", "Guatemala", "Kenya", "Brazil", "Peru", "Honduras",
    "Costa Rica", "Mexico", "El Salvador", "Nicaragua", "Panama", "Rwanda",
    "Burundi", "Yemen", "Indonesia", "Vietnam", "India", "Jamaica", "Hawaii",
    "Bolivia", "Ecuador", "Tanzania",
)

VARIETIES_KO = (
    "게이샤", "부르봉", "티피카", "파카마라", "카투라", "수단루메", "카티모르", "문도노보",
)

VARIETIES_EN = (
    "Pink Bourbon", "Red Bourbon", "Yellow Bourbon", "Geisha", "Gesha", "Bourbon",
    "Typica", "Caturra", "Catuai", "Pacamara", "SL28", "SL34", "Heirloom",
    "Sudan Rume", "Catimor", "Mundo Novo",
)

PROCESSES = (
    "Carbonic Maceration", "Extended Fermentation", "Semi-washed", "Wet Hulled",
    "Anaerobic", "Washed", "Natural", "Honey",
    "세미워시드", "워시드", "내추럴", "허니", "무산소",
)

ROAST_LEVELS = (
    "Medium-Dark", "Full City", "Light", "Medium", "Dark", "City", "Vienna",
    "French", "Italian",
    "라이트", "미디엄", "다크", "풀시티", "시티",
)

TASTE_KEYWORDS_KO = (
    "자스민", "복숭아", "얼그레이", "레몬", "오렌지", "초콜릿", "바닐라",
    "견과류", "캐러멜", "블루베리", "체리", "딸기", "포도", "사과",
    "꽃향기", "꿀", "설탕", "계피", "향신료", "허브",
)
