"""
Firebase Admin SDK bootstrap shared by authentication and Firestore access.
"""

import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials

logger = logging.getLogger(__name__)

_firebase_app = None


def get_firebase_app(credentials_path: Optional[str] = None):
    """Lazy initialization of Firebase Admin SDK"""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    # Check if already initialized
    try:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app
    except ValueError:
        pass

    cred_path = credentials_path or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if cred_path and os.path.exists(cred_path):
        _firebase_app = firebase_admin.initialize_app(credentials.Certificate(cred_path))
        logger.info("Firebase initialized from service account file")
    else:
        # Default credentials on Cloud Run / Functions
        _firebase_app = firebase_admin.initialize_app(credentials.ApplicationDefault())
        logger.info("Firebase initialized with application default credentials")

    return _firebase_app
