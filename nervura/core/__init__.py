"""Record core: schema, storage backends, merge engine and scope filters."""
