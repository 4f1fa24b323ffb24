# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for the park website backend - admin bootstrap.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Third-party library imports
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options

# Local application imports
from shared.constants import MAX_EMAIL_LENGTH
from site_backend.auth import (
    AuthError,
    FirebaseAuthClient,
    admin_exists,
    create_admin_user,
)
from site_backend.db import FirestoreContentDb

initialize_app()


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def setup_admin_user(req: https_fn.CallableRequest) -> dict:
    """
    Creates the first admin account. Only works while no admin exists, after
    that admins sign in through the login page.

    Args:
        req (https_fn.CallableRequest): The request, containing email and password.

    Returns:
        A dictionary with the new user's uid and email.
    """
    data = req.data or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not email or not password:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify email and password.",
        )
    if len(email) > MAX_EMAIL_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Email exceeds max length.",
        )

    db = FirestoreContentDb(firestore.client())
    if admin_exists(db):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.FAILED_PRECONDITION,
            "Admin user already exists. Please use the login page.",
        )

    try:
        user = create_admin_user(FirebaseAuthClient(), db, email, password)
    except AuthError as e:
        if e.code == "email-already-in-use":
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.ALREADY_EXISTS,
                "Email already in use.",
            )
        if e.code in ("invalid-email", "weak-password"):
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.INVALID_ARGUMENT, str(e)
            )
        logger.error(f"Failed to create admin user {email}: {e}")
        raise https_fn.HttpsError(https_fn.FunctionsErrorCode.INTERNAL, str(e))

    logger.info(f"Created admin user {user.email} ({user.id})")
    return {"uid": user.id, "email": user.email}
