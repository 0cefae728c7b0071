from __future__ import annotations

from pathlib import Path
from setuptools import find_packages, setup

BASE_DIR = Path(__file__).parent
README = (BASE_DIR / "readme.md").read_text(encoding="utf-8") if (BASE_DIR / "readme.md").exists() else ""

setup(
    name="event-pass-checkin",
    version="0.1.0",
    description="Encrypted QR event passes with camera and manual-code attendance check-in.",
    long_description=README,
    long_description_content_type="text/markdown",
    author="Hamidur",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"checkin_app.data": ["migrations/*.sql"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "cryptography>=41.0.0",
        "opencv-python>=4.8.0",
        "zxing-cpp>=2.2.0",
        "qrcode>=7.4",
        "Pillow>=10.0.0",
        "python-dotenv>=1.0.0",
        "requests>=2.31.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "checkin-app=checkin_app.main:main",
        ]
    },
)
