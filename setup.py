from setuptools import setup, find_packages  # type: ignore

setup(
    name='sanstools',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'cryptography',
        'loguru',
        'asyncpg',
        'sqlparse<0.5.4',
        'httpx',
        'web3>=7',
        'eth-account>=0.13',
        'aiohttp',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    include_package_data=True,
    package_data={
        'sanstools': [
            'sql/*/*.sql',      # Include all .sql files in sql/ subdirectories
        ],
    },
    description='Comic Sans detection and token reward node',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.11',
    entry_points={
        'console_scripts': [
            'sanstools=sanstools.cli:main',
        ],
    },
)
