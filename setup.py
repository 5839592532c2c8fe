"""Setup configuration for glmm_compare package."""

from setuptools import setup, find_packages

setup(
    name="glmm-compare",
    version="0.1.0",
    description="Compare binomial generalized linear mixed model fits across fitting packages",
    author="Quy-Anh Dang",
    author_email="dangquyanh150101@gmail.com",
    packages=find_packages(include=["glmm_compare", "glmm_compare.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.20.0",
        "scipy>=1.7.0",
        "matplotlib>=3.4.0",
        "pandas>=1.3.0",
        "statsmodels>=0.13.0",
        "patsy>=0.5.2",
        "mixedlm>=0.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
            "black>=22.0.0",
            "isort>=5.10.0",
            "flake8>=4.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Mathematics",
    ],
)
