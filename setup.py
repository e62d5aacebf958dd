from setuptools import setup, find_packages

setup(name='cotask',
      version='0.0.1',
      description='Tasks built from hand-driven coroutines, with continuations, combinators, and a bridge from completion handlers',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
      ],
      keywords='coroutine task future continuation async',
      license='MIT',
      packages=find_packages(),
      python_requires='>=3.11',
      install_requires=[
          'trio',
          'outcome',
      ],
      extras_require={
          'test': ['pytest'],
      },
)
