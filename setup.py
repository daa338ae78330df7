from setuptools import setup, find_packages

requires = [
    'pyramid',
    'pyramid-jinja2',
    'pyramid-debugtoolbar',
    'SQLAlchemy>=1.4',
    'PyJWT',
    'requests',
    'marshmallow>=3.13',
    'waitress',
    'python-dotenv',
]

tests_require = [
    'pytest',
    'pytest-cov',
    'webtest',
]

setup(
    name='moodle_portal',
    version='0.0.1',
    description='Marketing portal front-end for a Moodle installation',
    packages=find_packages(exclude=('tests',)),
    include_package_data=True,
    package_data={
        'moodle_portal': ['templates/*.jinja2', 'static/*'],
    },
    zip_safe=False,
    install_requires=requires,
    extras_require={
        'testing': tests_require,
    },
    entry_points={
        'paste.app_factory': [
            'main = moodle_portal:main',
        ],
    },
)
