# Pet price comparator services
