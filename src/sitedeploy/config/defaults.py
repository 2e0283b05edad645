"""Default configuration values for sitedeploy."""

# Build recipe defaults, shared by the CodeBuild and container strategies
DEFAULT_INSTALL_COMMAND = "npm install --no-fund --no-audit"
DEFAULT_BUILD_COMMAND = "npm run build"
DEFAULT_OUTPUT_DIR = "build"
DEFAULT_BUILD_ENVIRONMENT: dict[str, str] = {
    "NODE_OPTIONS": "--openssl-legacy-provider",
    "PUBLIC_URL": ".",
}

# Remote managed build
DEFAULT_CODEBUILD_PROJECT = "static-site-builder"

# Local containerized build
DEFAULT_CONTAINER_IMAGE = "node:20-alpine"
DEFAULT_STAGING_DIR = ".sitedeploy/staging"
CONTAINER_WORKDIR = "/workspace"

# Static origin falls back to this document for an empty path
DEFAULT_INDEX_DOCUMENT = "index.html"

# Environment variable to config path mapping
ENV_VAR_MAP: dict[str, tuple[str, ...]] = {
    "AWS_REGION": ("aws", "region"),
    "AWS_ACCESS_KEY_ID": ("aws", "access_key_id"),
    "AWS_SECRET_ACCESS_KEY": ("aws", "secret_access_key"),
    "AWS_ENDPOINT_URL": ("aws", "endpoint_url"),
    "S3_BUCKET_NAME": ("bucket",),
    "AWS_SQS_QUEUE_URL": ("queue_url",),
    "SITEDEPLOY_STRATEGY": ("strategy",),
    "SITEDEPLOY_CODEBUILD_PROJECT": ("codebuild", "project_name"),
    "SITEDEPLOY_STAGING_DIR": ("container", "staging_dir"),
}
