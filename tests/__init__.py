from parsnip.store import RemoteStore


def bind_config(model_class, config, request):
    orig_config = model_class.__dict__.get('config')
    request.addfinalizer(lambda: setattr(model_class, 'config', orig_config))
    model_class.bind(config)


class CountingStore(RemoteStore):
    """
    Wraps a store, recording ``(method, class_name, use_master_key)`` for
    every call made through it.
    """

    def __init__(self, store):
        self.store = store
        self.calls = []

    def reset(self):
        del self.calls[:]

    def calls_to(self, name):
        return [call for call in self.calls if call[0] == name]

    def create_or_update(self, class_name, object_id, attributes, use_master_key=False):
        self.calls.append(('create_or_update', class_name, use_master_key))
        return self.store.create_or_update(class_name, object_id, attributes, use_master_key)

    def fetch_by_id(self, class_name, object_id, use_master_key=False):
        self.calls.append(('fetch_by_id', class_name, use_master_key))
        return self.store.fetch_by_id(class_name, object_id, use_master_key)

    def delete(self, class_name, object_id, use_master_key=False):
        self.calls.append(('delete', class_name, use_master_key))
        return self.store.delete(class_name, object_id, use_master_key)

    def query(self, class_name, where, order=None, include=None, keys=None, skip=None, limit=None,
              use_master_key=False):
        self.calls.append(('query', class_name, use_master_key))
        return self.store.query(class_name, where, order=order, include=include, keys=keys, skip=skip,
                                limit=limit, use_master_key=use_master_key)

    def count(self, class_name, where, use_master_key=False):
        self.calls.append(('count', class_name, use_master_key))
        return self.store.count(class_name, where, use_master_key)
