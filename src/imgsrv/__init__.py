__author__ = "Nikita Sakhno"
__license__ = "MIT License"
__version__ = "2.0.0"
