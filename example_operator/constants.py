"""
Shared module to hold constant values for the operator
"""

# The group/version/kind of the managed custom resource
API_GROUP = "example.com"
API_VERSION = "v1"
KIND = "Example"
LIST_KIND = "ExampleList"

# Finalizer token owned by this controller
FINALIZER_NAME = "finalizers.example.com/cleanup"

# Reconciliation control annotations
PAUSE_ANNOTATION_NAME = "example.com/pause-reconcile"

# Annotation recording which cleanup actions have completed during deletion
CLEANUP_PROGRESS_ANNOTATION_NAME = "example.com/cleanup-completed"

# Label used to find resources created on behalf of a CR that cannot carry an
# ownerReference (e.g. cross-namespace resources)
OWNER_LABEL_NAME = "example.com/owner"

# Standard labels applied to managed children
NAME_LABEL = "app.kubernetes.io/name"
INSTANCE_LABEL = "app.kubernetes.io/instance"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
APP_NAME = "example"
MANAGER_NAME = "example-operator"

# Default namespace if none given
DEFAULT_NAMESPACE = "default"

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."
